"""Pydantic schemas for rz_market API."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.rz_common.money import bps_to_display, cents_to_display
from src.rz_market.domain.models import DEFAULT_OPTIONS, Market, PoolSnapshot, Position

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateMarketRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    options: list[str] = Field(default_factory=lambda: list(DEFAULT_OPTIONS), min_length=2)
    closes_at: datetime | None = None


class OpenPositionRequest(BaseModel):
    option: str = Field(..., min_length=1)
    stake_cents: int = Field(..., gt=0)


class SettleMarketRequest(BaseModel):
    winning_option: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class MarketItem(BaseModel):
    id: str
    title: str
    options: list[str]
    status: str
    closes_at: str | None
    winning_option: str | None

    @classmethod
    def from_domain(cls, m: Market) -> "MarketItem":
        return cls(
            id=m.id,
            title=m.title,
            options=m.options,
            status=m.status,
            closes_at=m.closes_at.isoformat() if m.closes_at else None,
            winning_option=m.winning_option,
        )


class PoolOptionItem(BaseModel):
    label: str
    pool_cents: int
    pool_display: str
    percent: float              # 70.0 for 70%
    bettors: int
    payout_multiplier_bps: int
    payout_multiplier_display: str


class PoolSnapshotResponse(BaseModel):
    market_id: str
    options: list[PoolOptionItem]
    total_pool_cents: int
    total_pool_display: str
    fee_percent: float

    @classmethod
    def from_snapshot(cls, s: PoolSnapshot) -> "PoolSnapshotResponse":
        return cls(
            market_id=s.market_id,
            options=[
                PoolOptionItem(
                    label=o.label,
                    pool_cents=o.pool,
                    pool_display=cents_to_display(o.pool),
                    percent=o.percent / 100,
                    bettors=o.bettors,
                    payout_multiplier_bps=o.payout_multiplier_bps,
                    payout_multiplier_display=bps_to_display(o.payout_multiplier_bps),
                )
                for o in s.options
            ],
            total_pool_cents=s.total_pool,
            total_pool_display=cents_to_display(s.total_pool),
            fee_percent=s.fee_bps / 100,
        )


class PositionItem(BaseModel):
    id: str
    market_id: str
    option_chosen: str
    stake_cents: int
    stake_display: str
    entry_multiple_display: str
    status: str
    payout_cents: int
    created_at: str
    settled_at: str | None

    @classmethod
    def from_domain(cls, p: Position) -> "PositionItem":
        return cls(
            id=p.id,
            market_id=p.market_id,
            option_chosen=p.option_chosen,
            stake_cents=p.stake_amount,
            stake_display=cents_to_display(p.stake_amount),
            entry_multiple_display=bps_to_display(p.entry_multiple_bps),
            status=p.status,
            payout_cents=p.payout_amount,
            created_at=p.created_at.isoformat() if p.created_at else "",
            settled_at=p.settled_at.isoformat() if p.settled_at else None,
        )
