"""Domain models for rz_market — pure dataclasses, no business logic."""

from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_OPTIONS = ["sim", "nao"]


@dataclass
class Market:
    id: str
    title: str
    options: list[str]
    status: str
    closes_at: datetime | None = None
    winning_option: str | None = None
    settled_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Position:
    id: str
    user_id: str
    market_id: str
    option_chosen: str
    stake_amount: int            # COIN cents
    entry_multiple_bps: int      # pool multiplier when the position was opened
    status: str                  # PositionStatus value
    payout_amount: int = 0
    created_at: datetime | None = None
    settled_at: datetime | None = None


@dataclass
class PoolOption:
    label: str
    pool: int                    # cents staked on this option
    percent: int                 # hundredths of a percent: 7000 = 70.00%
    bettors: int                 # distinct users
    payout_multiplier_bps: int   # >= 10000


@dataclass
class PoolSnapshot:
    """Derived view of a market's pools. Never persisted."""

    market_id: str
    total_pool: int
    fee_bps: int
    options: list[PoolOption] = field(default_factory=list)

    def option(self, label: str) -> PoolOption | None:
        return next((o for o in self.options if o.label == label), None)
