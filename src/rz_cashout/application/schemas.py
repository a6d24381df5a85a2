"""Pydantic schemas for rz_cashout API."""

from pydantic import BaseModel

from src.rz_cashout.domain.quote import CashoutQuote
from src.rz_common.money import bps_to_display, cents_to_display


class CashoutQuoteResponse(BaseModel):
    position_id: str
    multiple_now: str
    gross_cents: int
    fee_cents: int
    net_cents: int
    net_display: str

    @classmethod
    def from_quote(cls, q: CashoutQuote) -> "CashoutQuoteResponse":
        return cls(
            position_id=q.position_id,
            multiple_now=bps_to_display(q.multiple_now_bps),
            gross_cents=q.gross,
            fee_cents=q.fee,
            net_cents=q.net,
            net_display=cents_to_display(q.net),
        )


class CashoutResponse(CashoutQuoteResponse):
    status: str
    ledger_entry_id: int
    balance_after_cents: int
