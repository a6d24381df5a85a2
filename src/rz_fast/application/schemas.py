"""Pydantic schemas for rz_fast API."""

from pydantic import BaseModel, Field

from src.rz_common.enums import FastBetSide
from src.rz_common.money import bps_to_display, cents_to_display
from src.rz_fast.domain.models import FastBet, FastPool, FastPoolResult


class PlaceBetRequest(BaseModel):
    side: FastBetSide
    stake_cents: int = Field(..., gt=0)


class FastPoolItem(BaseModel):
    id: str
    round_number: int
    category: str
    asset_symbol: str
    asset_name: str
    question: str
    round_start: str
    round_end: str
    opening_price: str
    closing_price: str | None
    result: str | None
    status: str
    paused: bool
    odds: str

    @classmethod
    def from_domain(cls, p: FastPool) -> "FastPoolItem":
        return cls(
            id=p.id,
            round_number=p.round_number,
            category=p.category,
            asset_symbol=p.asset_symbol,
            asset_name=p.asset_name,
            question=p.question,
            round_start=p.round_start.isoformat(),
            round_end=p.round_end.isoformat(),
            opening_price=str(p.opening_price),
            closing_price=str(p.closing_price) if p.closing_price is not None else None,
            result=p.result,
            status=p.status,
            paused=p.paused,
            odds=bps_to_display(p.base_odds_bps),
        )


class FastBetItem(BaseModel):
    id: str
    pool_id: str
    side: str
    stake_cents: int
    stake_display: str
    odds: str
    processed: bool
    payout_cents: int | None

    @classmethod
    def from_domain(cls, b: FastBet) -> "FastBetItem":
        return cls(
            id=b.id,
            pool_id=b.pool_id,
            side=b.side,
            stake_cents=b.stake,
            stake_display=cents_to_display(b.stake),
            odds=bps_to_display(b.odds_bps),
            processed=b.processed,
            payout_cents=b.payout_amount,
        )


class FastPoolResultItem(BaseModel):
    pool_id: str
    asset_symbol: str
    opening_price: str
    closing_price: str
    price_change_percent: str
    result: str
    total_up_cents: int
    total_down_cents: int
    winners_count: int
    total_payout_cents: int
    created_at: str

    @classmethod
    def from_domain(cls, r: FastPoolResult) -> "FastPoolResultItem":
        return cls(
            pool_id=r.pool_id,
            asset_symbol=r.asset_symbol,
            opening_price=str(r.opening_price),
            closing_price=str(r.closing_price),
            price_change_percent=str(r.price_change_percent),
            result=r.result,
            total_up_cents=r.total_up,
            total_down_cents=r.total_down,
            winners_count=r.winners_count,
            total_payout_cents=r.total_payout,
            created_at=r.created_at.isoformat() if r.created_at else "",
        )
