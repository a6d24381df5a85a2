"""Domain models for rz_fast — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class FastPool:
    id: str
    round_number: int
    category: str
    asset_symbol: str
    asset_name: str
    question: str
    round_start: datetime
    round_end: datetime
    opening_price: Decimal
    status: str                                  # FastPoolStatus value
    paused: bool
    base_odds_bps: int
    closing_price: Decimal | None = None
    result: str | None = None                    # FastPoolOutcome value
    price_change_percent: Decimal | None = None
    created_at: datetime | None = None


@dataclass
class FastBet:
    id: str
    user_id: str
    pool_id: str
    side: str                                    # FastBetSide value
    stake: int                                   # COIN cents
    odds_bps: int                                # pool base odds at placement
    processed: bool = False
    payout_amount: int | None = None
    created_at: datetime | None = None


@dataclass
class FastPoolResult:
    pool_id: str
    asset_symbol: str
    opening_price: Decimal
    closing_price: Decimal
    price_change_percent: Decimal
    result: str
    total_up: int
    total_down: int
    winners_count: int
    total_payout: int
    created_at: datetime | None = None
