"""Unit tests for parimutuel pool arithmetic."""

import itertools

from src.rz_common.enums import PositionStatus
from src.rz_market.domain.models import Position
from src.rz_market.domain.pools import (
    accumulate_pools,
    payout_multiplier_bps,
    settlement_payout,
)


def _pos(pid: str, user: str, option: str, stake: int) -> Position:
    return Position(pid, user, "mkt-1", option, stake, 10000, PositionStatus.ACTIVE)


class TestTwoOptionMarket:
    """sim=700, nao=300, fee 20%."""

    def _snapshot(self):  # type: ignore[no-untyped-def]
        positions = [
            _pos("p1", "u1", "sim", 400),
            _pos("p2", "u2", "sim", 300),
            _pos("p3", "u3", "nao", 300),
        ]
        return accumulate_pools("mkt-1", ["sim", "nao"], positions, 2000)

    def test_pools_and_percent(self) -> None:
        snap = self._snapshot()
        assert snap.total_pool == 1000
        assert snap.option("sim").pool == 700  # type: ignore[union-attr]
        assert snap.option("sim").percent == 7000  # type: ignore[union-attr]
        assert snap.option("nao").percent == 3000  # type: ignore[union-attr]

    def test_multipliers(self) -> None:
        snap = self._snapshot()
        # (1000 - 0.2*300) / 700 = 1.3428 -> 1.34
        assert snap.option("sim").payout_multiplier_bps == 13400  # type: ignore[union-attr]
        # (1000 - 0.2*700) / 300 = 2.8666 -> 2.87
        assert snap.option("nao").payout_multiplier_bps == 28700  # type: ignore[union-attr]

    def test_bettors_are_distinct_users(self) -> None:
        positions = [_pos("p1", "u1", "sim", 100), _pos("p2", "u1", "sim", 50)]
        snap = accumulate_pools("mkt-1", ["sim", "nao"], positions, 2000)
        assert snap.option("sim").bettors == 1  # type: ignore[union-attr]
        assert snap.option("sim").pool == 150  # type: ignore[union-attr]


class TestEdgeCases:
    def test_empty_market(self) -> None:
        snap = accumulate_pools("mkt-1", ["sim", "nao"], [], 2000)
        assert snap.total_pool == 0
        assert all(o.percent == 0 for o in snap.options)
        assert all(o.payout_multiplier_bps == 10000 for o in snap.options)

    def test_unknown_option_ignored(self) -> None:
        positions = [_pos("p1", "u1", "sim", 100), _pos("p2", "u2", "talvez", 900)]
        snap = accumulate_pools("mkt-1", ["sim", "nao"], positions, 2000)
        assert snap.total_pool == 100
        assert [o.label for o in snap.options] == ["sim", "nao"]

    def test_one_sided_pool_pays_stake_back(self) -> None:
        assert payout_multiplier_bps(500, 500, 2000) == 10000

    def test_full_fee_never_drops_below_one(self) -> None:
        assert payout_multiplier_bps(100, 1000, 10000) == 10000
        assert payout_multiplier_bps(900, 1000, 10000) == 10000


class TestPoolProperties:
    STAKES = [0, 1, 7, 100, 333, 1000, 99999]

    def test_pools_sum_to_total_and_percent_to_100(self) -> None:
        for a, b, c in itertools.product(self.STAKES, repeat=3):
            positions = [
                _pos(f"p{i}", f"u{i}", label, stake)
                for i, (label, stake) in enumerate([("a", a), ("b", b), ("c", c)])
                if stake > 0
            ]
            snap = accumulate_pools("mkt-1", ["a", "b", "c"], positions, 2000)
            assert sum(o.pool for o in snap.options) == snap.total_pool
            if snap.total_pool > 0:
                assert abs(sum(o.percent for o in snap.options) - 10000) <= 3

    def test_multiplier_at_least_one(self) -> None:
        for pool, other, fee in itertools.product(self.STAKES, self.STAKES, [0, 500, 2000, 10000]):
            assert payout_multiplier_bps(pool, pool + other, fee) >= 10000


class TestSettlementPayout:
    def test_winners_share_losing_pool_after_fee(self) -> None:
        # W=700, L=300, fee 20%: pot to distribute = 700 + 240 = 940
        assert settlement_payout(400, 700, 300, 2000) == 537
        assert settlement_payout(300, 700, 300, 2000) == 402
        assert 537 + 402 <= 940

    def test_no_losers_returns_stake(self) -> None:
        assert settlement_payout(500, 500, 0, 2000) == 500

    def test_empty_winning_pool(self) -> None:
        assert settlement_payout(100, 0, 300, 2000) == 0
