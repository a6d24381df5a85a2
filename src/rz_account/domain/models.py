"""Domain models for rz_account — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.rz_common.enums import Currency, LedgerDirection


@dataclass
class Account:
    id: str
    user_id: str
    available_balance: int   # COIN cents
    fiat_balance: int        # FIAT cents
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def balance_of(self, currency: str) -> int:
        if currency == Currency.COIN:
            return self.available_balance
        return self.fiat_balance


@dataclass
class LedgerTransaction:
    id: int                          # BIGSERIAL
    user_id: str
    direction: str                   # LedgerDirection value
    currency: str                    # Currency value
    amount: int                      # cents, always > 0
    balance_after: int               # cents, balance of `currency` after op
    entry_type: str                  # LedgerEntryType value
    description: str | None = None
    market_id: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    created_at: datetime | None = None

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == LedgerDirection.CREDIT else -self.amount
