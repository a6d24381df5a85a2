"""PoolAccumulator — parimutuel pool arithmetic.

Pure functions over positions; no I/O. The application service loads the
market's option set and its active positions and calls accumulate_pools().

Payout multiplier for option o with stake pool P(o), total pool T, fee f:

    multiplier(o) = max(1.00, round2((T - f * (T - P(o))) / P(o)))

The fee is only taken from the losing side's money, so a winner always gets
at least their stake back. Options nobody has backed show 1.00x.
"""

from collections.abc import Iterable

from src.rz_common.money import BPS, ratio_to_multiplier_bps, share_to_percent_hundredths
from src.rz_market.domain.models import PoolOption, PoolSnapshot, Position


def payout_multiplier_bps(option_pool: int, total_pool: int, fee_bps: int) -> int:
    if option_pool <= 0:
        return BPS
    numerator = total_pool * BPS - fee_bps * (total_pool - option_pool)
    return max(BPS, ratio_to_multiplier_bps(numerator, option_pool * BPS))


def accumulate_pools(
    market_id: str,
    options: list[str],
    positions: Iterable[Position],
    fee_bps: int,
) -> PoolSnapshot:
    """Aggregate stakes per option.

    Positions on an option outside ``options`` are ignored. Bettor counts are
    distinct users, so a user with two positions on "sim" counts once.
    """
    pools = {label: 0 for label in options}
    bettors: dict[str, set[str]] = {label: set() for label in options}
    for position in positions:
        if position.option_chosen not in pools:
            continue
        pools[position.option_chosen] += position.stake_amount
        bettors[position.option_chosen].add(position.user_id)

    total = sum(pools.values())
    return PoolSnapshot(
        market_id=market_id,
        total_pool=total,
        fee_bps=fee_bps,
        options=[
            PoolOption(
                label=label,
                pool=pools[label],
                percent=share_to_percent_hundredths(pools[label], total),
                bettors=len(bettors[label]),
                payout_multiplier_bps=payout_multiplier_bps(pools[label], total, fee_bps),
            )
            for label in options
        ],
    )


def settlement_payout(stake: int, winning_pool: int, losing_pool: int, fee_bps: int) -> int:
    """Winner's share at settlement, floored to the cent.

    Unrounded effective multiplier (W + L * (1 - f)) / W, evaluated in exact
    integer arithmetic so the sum of payouts never exceeds W + L * (1 - f).
    """
    if winning_pool <= 0:
        return 0
    numerator = stake * (winning_pool * BPS + losing_pool * (BPS - fee_bps))
    return numerator // (winning_pool * BPS)
