"""Unit tests for CashoutService quote and execution."""

import pytest

from src.rz_cashout.application.service import CashoutService
from src.rz_cashout.domain.quote import quote_from_multiple
from src.rz_common.enums import MarketStatus, PositionStatus
from src.rz_common.errors import (
    CashoutNotAllowedError,
    PositionNotActiveError,
    PositionNotFoundError,
)
from src.rz_common.events import BALANCE_CHANGED, POSITION_CASHED_OUT


@pytest.fixture
def service(markets, accounts, clock, events) -> CashoutService:
    return CashoutService(
        market_repo=markets, account_repo=accounts, fee_bps=200, pool_fee_bps=2000,
        clock=clock, publisher=events,
    )


@pytest.fixture(autouse=True)
def seeded(markets, accounts) -> None:
    markets.add_market()
    for user in ("u1", "u2", "u3"):
        accounts.seed(user)
    markets.add_position("p1", "u1", "sim", 400)
    markets.add_position("p2", "u2", "sim", 300)
    markets.add_position("p3", "u3", "nao", 300)


class TestQuoteArithmetic:
    def test_fee_rounds_up_and_net_never_negative(self) -> None:
        q = quote_from_multiple("p1", 400, 13400, 200)
        assert (q.gross, q.fee, q.net) == (536, 11, 525)
        assert quote_from_multiple("p1", 1, 10000, 10000).net == 0


class TestQuoteCashout:
    async def test_uses_live_multiplier(self, service, db) -> None:
        quote = await service.quote_cashout(db, "p1")
        assert quote.multiple_now_bps == 13400
        assert quote.net == 525

    async def test_unknown_position(self, service, db) -> None:
        with pytest.raises(PositionNotFoundError):
            await service.quote_cashout(db, "nope")

    async def test_settled_market(self, service, db, markets) -> None:
        markets.markets["mkt-1"].status = MarketStatus.SETTLED
        with pytest.raises(CashoutNotAllowedError):
            await service.quote_cashout(db, "p1")


class TestPerformCashout:
    async def test_credits_net_and_closes_position(self, service, db, markets, accounts, events) -> None:
        quote, entry, balance_after = await service.perform_cashout(db, "p1", "u1")

        assert quote.net == 525
        assert balance_after == 525
        assert entry.entry_type == "CASHOUT"
        assert entry.amount == 525
        assert markets.positions["p1"].status == PositionStatus.CASHED_OUT
        assert markets.positions["p1"].payout_amount == 525
        assert events.types() == [BALANCE_CHANGED, POSITION_CASHED_OUT]

    async def test_second_cashout_is_rejected(self, service, db, accounts) -> None:
        await service.perform_cashout(db, "p1", "u1")
        with pytest.raises(PositionNotActiveError):
            await service.perform_cashout(db, "p1", "u1")
        assert len(accounts.entries("u1", "CASHOUT")) == 1
        assert accounts.balance("u1") == 525

    async def test_other_users_position_is_not_found(self, service, db, markets, accounts) -> None:
        with pytest.raises(PositionNotFoundError):
            await service.perform_cashout(db, "p1", "u2")
        assert markets.positions["p1"].status == PositionStatus.ACTIVE
        assert accounts.entries(entry_type="CASHOUT") == []

    async def test_cashed_out_stake_leaves_the_pool(self, service, db) -> None:
        await service.perform_cashout(db, "p1", "u1")
        # sim pool is now 300 of 600: (600 - 0.2*300) / 300 = 1.80
        quote = await service.quote_cashout(db, "p2")
        assert quote.multiple_now_bps == 18000

    async def test_credit_failure_keeps_position_active(self, service, db, markets, accounts) -> None:
        accounts.fail_credit_for.add("u1")
        with pytest.raises(RuntimeError):
            await service.perform_cashout(db, "p1", "u1")
        assert markets.positions["p1"].status == PositionStatus.ACTIVE
        assert db.rollbacks == 1
