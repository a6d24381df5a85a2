"""Pydantic schemas and cursor utilities for rz_account API."""

import base64
import json

from pydantic import BaseModel, Field

from src.rz_common.enums import Currency
from src.rz_common.money import cents_to_display

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except Exception:
        return None


def display_for(currency: str, cents: int) -> str:
    symbol = "RZ" if currency == Currency.COIN else "R$"
    return cents_to_display(cents, symbol)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class FundingRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Amount in cents")
    currency: Currency = Currency.COIN


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    coin_balance_cents: int
    coin_balance_display: str
    fiat_balance_cents: int
    fiat_balance_display: str

    @classmethod
    def from_cents(cls, user_id: str, coin: int, fiat: int) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            coin_balance_cents=coin,
            coin_balance_display=display_for(Currency.COIN, coin),
            fiat_balance_cents=fiat,
            fiat_balance_display=display_for(Currency.FIAT, fiat),
        )


class FundingResponse(BaseModel):
    currency: str
    amount_cents: int
    amount_display: str
    balance_after_cents: int
    balance_after_display: str
    ledger_entry_id: int

    @classmethod
    def from_result(
        cls, currency: str, amount: int, balance_after: int, entry_id: int
    ) -> "FundingResponse":
        return cls(
            currency=currency,
            amount_cents=amount,
            amount_display=display_for(currency, amount),
            balance_after_cents=balance_after,
            balance_after_display=display_for(currency, balance_after),
            ledger_entry_id=entry_id,
        )


class LedgerEntryItem(BaseModel):
    id: int
    direction: str
    currency: str
    entry_type: str
    amount_cents: int
    amount_display: str
    balance_after_cents: int
    balance_after_display: str
    market_id: str | None
    reference_type: str | None
    reference_id: str | None
    description: str | None
    created_at: str  # ISO8601 string


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
