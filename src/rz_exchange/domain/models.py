"""Domain models for rz_exchange — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class PriceSample:
    symbol: str
    price: Decimal               # FIAT per COIN
    observed_at: datetime


@dataclass
class ExchangeOrder:
    id: str
    user_id: str
    order_type: str              # OrderType value
    side: str                    # ExchangeSide value
    amount_coin: int             # coin cents
    amount_fiat: int             # fiat cents (0 for a pending limit order)
    status: str                  # ExchangeOrderStatus value
    limit_price: Decimal | None = None
    executed_price: Decimal | None = None
    fee_coin: int = 0
    fee_fiat: int = 0
    failure_reason: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    filled_at: datetime | None = None
    cancelled_at: datetime | None = None


@dataclass(frozen=True)
class Fill:
    """What one execution moves: the paid leg and the (fee-netted) received leg."""

    side: str
    price: Decimal
    pay_currency: str
    pay_amount: int
    receive_currency: str
    receive_gross: int
    fee: int

    @property
    def receive_net(self) -> int:
        return self.receive_gross - self.fee

    @property
    def amount_coin(self) -> int:
        return self.receive_gross if self.receive_currency == "COIN" else self.pay_amount

    @property
    def amount_fiat(self) -> int:
        return self.receive_gross if self.receive_currency == "FIAT" else self.pay_amount
