"""Global enums — must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import StrEnum


class Currency(StrEnum):
    COIN = "COIN"
    FIAT = "FIAT"


class LedgerDirection(StrEnum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class LedgerEntryType(StrEnum):
    # Deposit/Withdraw (external funding, user-initiated)
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    # Prediction markets
    POSITION_STAKE = "POSITION_STAKE"
    MARKET_PAYOUT = "MARKET_PAYOUT"
    CASHOUT = "CASHOUT"
    # Coin/fiat exchange
    EXCHANGE_DEBIT = "EXCHANGE_DEBIT"
    EXCHANGE_CREDIT = "EXCHANGE_CREDIT"
    LIMIT_CANCEL_FEE = "LIMIT_CANCEL_FEE"
    # Fast pools
    FAST_BET = "FAST_BET"
    FAST_PAYOUT = "FAST_PAYOUT"
    FAST_REFUND = "FAST_REFUND"


class MarketStatus(StrEnum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    SETTLED = "SETTLED"


class PositionStatus(StrEnum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    CASHED_OUT = "cashed_out"
    CANCELLED = "cancelled"


class ExchangeSide(StrEnum):
    BUY_COIN = "buy_coin"
    SELL_COIN = "sell_coin"


class OrderType(StrEnum):
    MARKET = "market"
    LIMIT = "limit"


class ExchangeOrderStatus(StrEnum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"


class FastPoolStatus(StrEnum):
    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"


class FastBetSide(StrEnum):
    UP = "up"
    DOWN = "down"


class FastPoolOutcome(StrEnum):
    """Round outcome, stored with the legacy Portuguese labels."""

    UP = "subiu"
    DOWN = "desceu"
    FLAT = "manteve"


class ReconciliationStatus(StrEnum):
    RECONCILED = "reconciled"
    DISCREPANCY_FOUND = "discrepancy_found"


class Severity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"
