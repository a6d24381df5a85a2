"""Unit tests for OrderExecutor: market orders, limit batch, cancel and expiry."""

from datetime import timedelta
from decimal import Decimal

import pytest

from src.rz_common.enums import ExchangeOrderStatus
from src.rz_common.errors import (
    InsufficientBalanceError,
    InvalidOrderError,
    OrderNotCancellableError,
    OrderNotFoundError,
    StalePriceError,
)
from src.rz_common.events import BALANCE_CHANGED, LIMIT_ORDERS_EXECUTED
from src.rz_exchange.application.service import OrderExecutor
from src.rz_exchange.domain.models import PriceSample

SYMBOL = "COINFIAT"


def _executor(orders, accounts, oracle, clock, events, cancel_fee_bps=0):  # type: ignore[no-untyped-def]
    return OrderExecutor(
        repo=orders, account_repo=accounts, oracle=oracle, fee_bps=200,
        cancel_fee_bps=cancel_fee_bps, batch_size=50, max_price_age_seconds=30,
        symbol=SYMBOL, clock=clock, publisher=events,
    )


@pytest.fixture
def executor(orders, accounts, oracle, clock, events) -> OrderExecutor:
    oracle.set(SYMBOL, "2.5", clock.now)
    return _executor(orders, accounts, oracle, clock, events)


class TestMarketOrder:
    async def test_buy_moves_both_legs(self, executor, db, accounts, orders) -> None:
        accounts.seed("u1", fiat=1000)

        result = await executor.execute_market_order(db, "u1", "buy_coin", 1000, "FIAT")

        assert result.amount_converted == 392
        assert result.fee_charged == 8
        assert result.new_balances == {"COIN": 392, "FIAT": 0}
        assert result.order.status == ExchangeOrderStatus.FILLED
        assert result.order.fee_coin == 8
        debit = accounts.entries("u1", "EXCHANGE_DEBIT")[0]
        credit = accounts.entries("u1", "EXCHANGE_CREDIT")[0]
        assert (debit.currency, debit.amount) == ("FIAT", 1000)
        assert (credit.currency, credit.amount) == ("COIN", 392)
        assert debit.reference_id == credit.reference_id == result.order.id
        assert db.commits == 1

    async def test_sell(self, executor, db, accounts) -> None:
        accounts.seed("u1", coin=400)
        result = await executor.execute_market_order(db, "u1", "sell_coin", 400, "COIN")
        assert result.new_balances == {"COIN": 0, "FIAT": 980}

    async def test_insufficient_balance_changes_nothing(self, executor, db, accounts, orders, events) -> None:
        accounts.seed("u1", fiat=500)

        with pytest.raises(InsufficientBalanceError):
            await executor.execute_market_order(db, "u1", "buy_coin", 1000, "FIAT")

        assert accounts.balance("u1", "FIAT") == 500
        assert accounts.balance("u1", "COIN") == 0
        assert len(accounts.entries("u1")) == 1
        assert orders.orders == {}
        assert events.events == []

    async def test_stale_price_rejected_before_any_write(self, executor, db, accounts, orders, clock) -> None:
        accounts.seed("u1", fiat=1000)
        clock.advance(31)
        with pytest.raises(StalePriceError):
            await executor.execute_market_order(db, "u1", "buy_coin", 1000, "FIAT")
        assert accounts.balance("u1", "FIAT") == 1000
        assert orders.orders == {}

    async def test_explicit_price_sample(self, executor, db, accounts, clock) -> None:
        accounts.seed("u1", fiat=1000)
        sample = PriceSample(SYMBOL, Decimal("2"), clock.now)
        result = await executor.execute_market_order(
            db, "u1", "buy_coin", 1000, "FIAT", current_price=sample
        )
        assert result.amount_converted == 490  # 500 - 10 fee


class TestPlaceLimitOrder:
    async def test_records_intent_without_moving_funds(self, executor, db, accounts, orders, clock) -> None:
        accounts.seed("u1", fiat=1000)
        order = await executor.place_limit_order(
            db, "u1", "buy_coin", 400, Decimal("2.4"), expires_in_seconds=60
        )
        assert order.status == ExchangeOrderStatus.PENDING
        assert order.expires_at == clock.now + timedelta(seconds=60)
        assert accounts.balance("u1", "FIAT") == 1000

    @pytest.mark.parametrize("amount,price", [(0, "2.4"), (100, "0")])
    async def test_invalid(self, executor, db, amount: int, price: str) -> None:
        with pytest.raises(InvalidOrderError):
            await executor.place_limit_order(db, "u1", "buy_coin", amount, Decimal(price))


class TestLimitBatch:
    @pytest.fixture(autouse=True)
    def book(self, orders, accounts, clock) -> None:
        accounts.seed("u1", fiat=1000)
        accounts.seed("u2", coin=400)
        accounts.seed("u3")
        orders.add_limit("o1", "u1", "buy_coin", 400, "2.6")     # executable
        orders.add_limit("o2", "u2", "sell_coin", 400, "3.0")    # price too low
        orders.add_limit("o3", "u3", "buy_coin", 400, "3.0")     # no funds
        orders.add_limit("o4", "u1", "buy_coin", 1, "9", expires_at=clock.now - timedelta(seconds=1))

    async def test_executes_fails_and_expires(self, executor, db, orders, accounts, events) -> None:
        result = await executor.execute_pending_limit_orders(db)

        assert result["success"] is True
        assert (result["executed_count"], result["failed_count"], result["expired_count"]) == (1, 1, 1)
        assert result["current_price"] == "2.5"
        assert orders.orders["o1"].status == ExchangeOrderStatus.FILLED
        assert orders.orders["o1"].amount_fiat == 1000
        assert orders.orders["o2"].status == ExchangeOrderStatus.PENDING
        assert orders.orders["o3"].status == ExchangeOrderStatus.FAILED
        assert "Insufficient" in orders.orders["o3"].failure_reason
        assert orders.orders["o4"].status == ExchangeOrderStatus.EXPIRED
        assert accounts.balance("u1", "COIN") == 392
        assert accounts.balance("u1", "FIAT") == 0
        assert accounts.entries("u3") == []
        assert LIMIT_ORDERS_EXECUTED in events.types()

    async def test_stale_price_executes_nothing(self, executor, db, orders, accounts, clock) -> None:
        clock.advance(31)

        result = await executor.execute_pending_limit_orders(db)

        assert result["success"] is False
        assert result["executed_count"] == 0
        assert "stale" in result["message"]
        assert all(o.status == ExchangeOrderStatus.PENDING for o in orders.orders.values())
        assert accounts.balance("u1", "FIAT") == 1000

    async def test_missing_price_executes_nothing(self, orders, accounts, oracle, clock, events, db) -> None:
        executor = _executor(orders, accounts, oracle, clock, events)
        result = await executor.execute_pending_limit_orders(db)
        assert result["success"] is False
        assert orders.orders["o1"].status == ExchangeOrderStatus.PENDING

    async def test_unexpected_error_is_isolated(self, executor, db, orders, accounts) -> None:
        accounts.fail_credit_for.add("u1")
        accounts.seed("u3", fiat=2000)

        result = await executor.execute_pending_limit_orders(db)

        assert result["executed_count"] == 1
        assert result["failed_count"] == 1
        assert orders.orders["o1"].status == ExchangeOrderStatus.FAILED
        assert accounts.balance("u1", "FIAT") == 1000
        assert orders.orders["o3"].status == ExchangeOrderStatus.FILLED

    async def test_expiry_write_error_is_isolated(self, executor, db, orders, accounts, monkeypatch) -> None:
        close = orders.close_pending_order

        async def flaky_close(db, order_id, new_status, at, reason=None):  # type: ignore[no-untyped-def]
            if new_status == ExchangeOrderStatus.EXPIRED:
                raise RuntimeError("lost connection while expiring")
            return await close(db, order_id, new_status, at, reason)

        monkeypatch.setattr(orders, "close_pending_order", flaky_close)

        result = await executor.execute_pending_limit_orders(db)

        assert result["executed_count"] == 1
        assert result["expired_count"] == 0
        assert result["failed_count"] == 2   # o3 no funds, o4 expiry write
        assert orders.orders["o1"].status == ExchangeOrderStatus.FILLED
        assert orders.orders["o4"].status == ExchangeOrderStatus.PENDING
        assert accounts.balance("u1", "COIN") == 392

    async def test_second_pass_does_not_refill(self, executor, db, accounts) -> None:
        await executor.execute_pending_limit_orders(db)
        again = await executor.execute_pending_limit_orders(db)
        assert again["executed_count"] == 0
        assert len(accounts.entries("u1", "EXCHANGE_CREDIT")) == 1


class TestCancelLimitOrder:
    async def test_owner_cancels_without_penalty(self, executor, db, orders) -> None:
        orders.add_limit("o1", "u1", "buy_coin", 400, "2.6")
        order, penalty = await executor.cancel_limit_order(db, "o1", "u1")
        assert order.status == ExchangeOrderStatus.CANCELLED
        assert penalty == 0

    async def test_penalty_charged_in_paying_currency(self, orders, accounts, oracle, clock, events, db) -> None:
        executor = _executor(orders, accounts, oracle, clock, events, cancel_fee_bps=100)
        accounts.seed("u1", fiat=1000)
        orders.add_limit("o1", "u1", "buy_coin", 400, "2.6")

        _, penalty = await executor.cancel_limit_order(db, "o1", "u1")

        # 1% of 400 * 2.6 = 10.4 -> 11
        assert penalty == 11
        assert accounts.balance("u1", "FIAT") == 989
        assert accounts.entries("u1", "LIMIT_CANCEL_FEE")[0].amount == 11
        assert BALANCE_CHANGED in events.types()

    async def test_not_owner(self, executor, db, orders) -> None:
        orders.add_limit("o1", "u1", "buy_coin", 400, "2.6")
        with pytest.raises(OrderNotFoundError):
            await executor.cancel_limit_order(db, "o1", "u2")

    async def test_filled_order_cannot_be_cancelled(self, executor, db, orders) -> None:
        orders.add_limit("o1", "u1", "buy_coin", 400, "2.6").status = ExchangeOrderStatus.FILLED
        with pytest.raises(OrderNotCancellableError):
            await executor.cancel_limit_order(db, "o1", "u1")


class TestExpireLimitOrders:
    async def test_expires_overdue_only(self, executor, db, orders, clock) -> None:
        orders.add_limit("old", "u1", "buy_coin", 400, "2.6", expires_at=clock.now)
        orders.add_limit("new", "u1", "buy_coin", 400, "2.6", expires_at=clock.now + timedelta(hours=1))
        orders.add_limit("forever", "u1", "buy_coin", 400, "2.6")

        result = await executor.expire_limit_orders(db)

        assert result["expired_count"] == 1
        assert orders.orders["old"].status == ExchangeOrderStatus.EXPIRED
        assert orders.orders["new"].status == ExchangeOrderStatus.PENDING
