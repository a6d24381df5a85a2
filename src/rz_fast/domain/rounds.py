"""Round arithmetic: outcome, price change, betting window and bet payouts."""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from src.rz_common.enums import FastBetSide, FastPoolOutcome, FastPoolStatus
from src.rz_common.money import apply_multiplier
from src.rz_fast.domain.models import FastPool

_FOUR_PLACES = Decimal("0.0001")

# Fixed round length; the fast_pools table enforces it too
ROUND_SECONDS = 60


def round_outcome(opening_price: Decimal, closing_price: Decimal) -> FastPoolOutcome:
    if closing_price > opening_price:
        return FastPoolOutcome.UP
    if closing_price < opening_price:
        return FastPoolOutcome.DOWN
    return FastPoolOutcome.FLAT


def price_change_percent(opening_price: Decimal, closing_price: Decimal) -> Decimal:
    """(close - open) / open * 100, to 4 decimal places. 100 -> 102 gives 2.0000."""
    change = (closing_price - opening_price) / opening_price * 100
    return change.quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)


def is_winning_side(side: str, outcome: str) -> bool:
    return (side == FastBetSide.UP and outcome == FastPoolOutcome.UP) or (
        side == FastBetSide.DOWN and outcome == FastPoolOutcome.DOWN
    )


def bet_payout(side: str, stake: int, odds_bps: int, outcome: str) -> int:
    """Winners get floor(stake * odds), losers 0. A flat round returns every stake."""
    if outcome == FastPoolOutcome.FLAT:
        return stake
    if is_winning_side(side, outcome):
        return apply_multiplier(stake, odds_bps)
    return 0


def betting_closed_reason(pool: FastPool, now: datetime, lockout_seconds: int) -> str | None:
    """None while bets are accepted; otherwise why not."""
    if pool.status != FastPoolStatus.ACTIVE:
        return f"round is {pool.status}"
    if pool.paused:
        return "asset is paused"
    if now >= pool.round_end - timedelta(seconds=lockout_seconds):
        return f"betting closes {lockout_seconds}s before the round ends"
    return None
