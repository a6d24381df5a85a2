"""Unit tests for fill arithmetic, freshness gate and limit triggers."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.rz_common.errors import InvalidOrderError, StalePriceError
from src.rz_exchange.application.price_feed import PriceFeedService
from src.rz_exchange.domain.models import PriceSample
from src.rz_exchange.domain.pricing import ensure_fresh, limit_is_executable, plan_fill

T0 = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)
PRICE = Decimal("2.5")  # FIAT per COIN


class TestPlanFill:
    def test_buy_with_fiat(self) -> None:
        fill = plan_fill("buy_coin", 1000, "FIAT", PRICE, 200)
        assert (fill.pay_currency, fill.pay_amount) == ("FIAT", 1000)
        assert (fill.receive_currency, fill.receive_gross) == ("COIN", 400)
        assert fill.fee == 8
        assert fill.receive_net == 392
        assert (fill.amount_coin, fill.amount_fiat) == (400, 1000)

    def test_buy_sized_in_coin(self) -> None:
        fill = plan_fill("buy_coin", 400, "COIN", PRICE, 200)
        assert fill.pay_amount == 1000
        assert fill.receive_gross == 400

    def test_sell_coin(self) -> None:
        fill = plan_fill("sell_coin", 400, "COIN", PRICE, 200)
        assert (fill.pay_currency, fill.pay_amount) == ("COIN", 400)
        assert (fill.receive_currency, fill.receive_gross, fill.fee) == ("FIAT", 1000, 20)
        assert (fill.amount_coin, fill.amount_fiat) == (400, 1000)

    def test_sell_sized_in_fiat(self) -> None:
        fill = plan_fill("sell_coin", 1000, "FIAT", PRICE, 200)
        assert fill.pay_amount == 400
        assert fill.receive_gross == 1000

    def test_conversion_rounds_down(self) -> None:
        fill = plan_fill("buy_coin", 1000, "FIAT", Decimal("3"), 0)
        assert fill.receive_gross == 333

    @pytest.mark.parametrize(
        "side,amount,currency",
        [
            ("buy_coin", 0, "FIAT"),
            ("buy_coin", 1, "FIAT"),        # rounds to zero coin
            ("hold_coin", 100, "FIAT"),
            ("buy_coin", 100, "USD"),
        ],
    )
    def test_invalid(self, side: str, amount: int, currency: str) -> None:
        with pytest.raises(InvalidOrderError):
            plan_fill(side, amount, currency, PRICE, 200)


class TestEnsureFresh:
    def test_at_threshold_is_fresh(self) -> None:
        ensure_fresh(PriceSample("COINFIAT", PRICE, T0), T0 + timedelta(seconds=30), 30)

    def test_older_is_stale(self) -> None:
        with pytest.raises(StalePriceError) as exc:
            ensure_fresh(PriceSample("COINFIAT", PRICE, T0), T0 + timedelta(seconds=31), 30)
        assert exc.value.http_status == 503


class TestLimitTrigger:
    def test_buy_at_or_below_limit(self) -> None:
        assert limit_is_executable("buy_coin", Decimal("2.4"), Decimal("2.5"))
        assert limit_is_executable("buy_coin", Decimal("2.5"), Decimal("2.5"))
        assert not limit_is_executable("buy_coin", Decimal("2.6"), Decimal("2.5"))

    def test_sell_at_or_above_limit(self) -> None:
        assert limit_is_executable("sell_coin", Decimal("2.6"), Decimal("2.5"))
        assert not limit_is_executable("sell_coin", Decimal("2.4"), Decimal("2.5"))


class TestPriceFeed:
    async def test_record_then_read(self, db, oracle) -> None:
        feed = PriceFeedService(oracle=oracle)
        await feed.record_price(db, "coinfiat", Decimal("2.5"), T0)
        sample = await feed.get_price(db, "COINFIAT")
        assert sample.price == Decimal("2.5")
        assert db.commits == 1

    async def test_older_sample_does_not_overwrite(self, db, oracle) -> None:
        feed = PriceFeedService(oracle=oracle)
        await feed.record_price(db, "COINFIAT", Decimal("2.5"), T0)
        await feed.record_price(db, "COINFIAT", Decimal("9.9"), T0 - timedelta(seconds=5))
        assert (await feed.get_price(db, "COINFIAT")).price == Decimal("2.5")

    async def test_non_positive_price_rejected(self, db, oracle) -> None:
        with pytest.raises(InvalidOrderError):
            await PriceFeedService(oracle=oracle).record_price(db, "COINFIAT", Decimal("0"))
