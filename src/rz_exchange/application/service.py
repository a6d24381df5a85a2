"""OrderExecutor — COIN/FIAT market orders, limit orders and the limit batch.

A fill is always the same sequence on one session: conditional debit of the
paid currency (+ ledger DEBIT), credit of the net received amount (+ ledger
CREDIT), and the order row. User-facing calls commit once or roll back
everything. The batch executor runs each order in its own savepoint so one
failing order is marked ``failed`` without touching the others.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_account.domain.repository import AccountRepositoryProtocol
from src.rz_account.infrastructure.persistence import AccountRepository
from src.rz_common.datetime_utils import utc_now
from src.rz_common.enums import (
    Currency,
    ExchangeOrderStatus,
    ExchangeSide,
    LedgerEntryType,
    OrderType,
)
from src.rz_common.errors import (
    AppError,
    InsufficientBalanceError,
    InvalidOrderError,
    OrderNotCancellableError,
    OrderNotFoundError,
)
from src.rz_common.events import (
    BALANCE_CHANGED,
    LIMIT_ORDERS_EXECUTED,
    EventPublisher,
    publish_event,
)
from src.rz_common.id_generator import generate_id
from src.rz_common.money import calculate_fee, coin_to_fiat
from src.rz_exchange.domain.models import ExchangeOrder, Fill, PriceSample
from src.rz_exchange.domain.pricing import ensure_fresh, limit_is_executable, plan_fill
from src.rz_exchange.domain.repository import ExchangeOrderRepositoryProtocol, PriceOracle
from src.rz_exchange.infrastructure.persistence import ExchangeOrderRepository
from src.rz_exchange.infrastructure.price_oracle import RatesPriceOracle

logger = logging.getLogger(__name__)


@dataclass
class MarketOrderResult:
    order: ExchangeOrder
    new_balances: dict[str, int]     # {"COIN": ..., "FIAT": ...}
    amount_converted: int            # net amount received
    fee_charged: int                 # in the received currency


class OrderExecutor:
    def __init__(
        self,
        repo: ExchangeOrderRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        oracle: PriceOracle | None = None,
        fee_bps: int | None = None,
        cancel_fee_bps: int | None = None,
        batch_size: int | None = None,
        max_price_age_seconds: int | None = None,
        symbol: str | None = None,
        clock: Callable[[], datetime] = utc_now,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._repo: ExchangeOrderRepositoryProtocol = repo or ExchangeOrderRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._oracle: PriceOracle = oracle or RatesPriceOracle()
        self._fee_bps = settings.EXCHANGE_FEE_BPS if fee_bps is None else fee_bps
        self._cancel_fee_bps = (
            settings.LIMIT_CANCEL_FEE_BPS if cancel_fee_bps is None else cancel_fee_bps
        )
        self._batch_size = batch_size or settings.LIMIT_BATCH_SIZE
        self._max_age = (
            settings.PRICE_MAX_AGE_SECONDS if max_price_age_seconds is None
            else max_price_age_seconds
        )
        self._symbol = symbol or settings.EXCHANGE_SYMBOL
        self._clock = clock
        self._publish = publisher

    async def _apply_fill(
        self, db: AsyncSession, user_id: str, fill: Fill, order_id: str
    ) -> dict[str, int]:
        """Debit the paid leg, credit the net received leg. Returns balances after."""
        await self._accounts.debit(
            db, user_id, fill.pay_currency, fill.pay_amount, LedgerEntryType.EXCHANGE_DEBIT,
            f"{fill.side} @ {fill.price}: pay {fill.pay_amount} {fill.pay_currency}",
            reference_type="exchange_order", reference_id=order_id,
        )
        account, _ = await self._accounts.credit(
            db, user_id, fill.receive_currency, fill.receive_net,
            LedgerEntryType.EXCHANGE_CREDIT,
            f"{fill.side} @ {fill.price}: receive {fill.receive_net} {fill.receive_currency} "
            f"(fee {fill.fee})",
            reference_type="exchange_order", reference_id=order_id,
        )
        return {Currency.COIN.value: account.available_balance, Currency.FIAT.value: account.fiat_balance}

    # ------------------------------------------------------------------
    # Market orders
    # ------------------------------------------------------------------

    async def execute_market_order(
        self,
        db: AsyncSession,
        user_id: str,
        side: str,
        amount_input: int,
        input_currency: str,
        current_price: PriceSample | None = None,
    ) -> MarketOrderResult:
        """Convert immediately at the given (or latest) price.

        The price sample must be fresh; otherwise StalePriceError is raised
        before anything is written.
        """
        sample = current_price or await self._oracle.get_current_price(db, self._symbol)
        ensure_fresh(sample, self._clock(), self._max_age)
        fill = plan_fill(side, amount_input, input_currency, sample.price, self._fee_bps)

        order_id = generate_id()
        try:
            balances = await self._apply_fill(db, user_id, fill, order_id)
            order = await self._repo.insert_order(
                db,
                ExchangeOrder(
                    id=order_id,
                    user_id=user_id,
                    order_type=OrderType.MARKET,
                    side=side,
                    amount_coin=fill.amount_coin,
                    amount_fiat=fill.amount_fiat,
                    status=ExchangeOrderStatus.FILLED,
                    executed_price=fill.price,
                    fee_coin=fill.fee if fill.receive_currency == Currency.COIN else 0,
                    fee_fiat=fill.fee if fill.receive_currency == Currency.FIAT else 0,
                    filled_at=self._clock(),
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._publish(BALANCE_CHANGED, {"user_id": user_id})
        return MarketOrderResult(
            order=order,
            new_balances=balances,
            amount_converted=fill.receive_net,
            fee_charged=fill.fee,
        )

    # ------------------------------------------------------------------
    # Limit orders
    # ------------------------------------------------------------------

    async def place_limit_order(
        self,
        db: AsyncSession,
        user_id: str,
        side: str,
        amount_coin: int,
        limit_price: Decimal,
        expires_in_seconds: int | None = None,
    ) -> ExchangeOrder:
        """Record intent only. No funds move until a batch pass fills it."""
        if side not in (ExchangeSide.BUY_COIN, ExchangeSide.SELL_COIN):
            raise InvalidOrderError(f"unknown side {side}")
        if amount_coin <= 0:
            raise InvalidOrderError(f"amount must be greater than 0, got {amount_coin}")
        if limit_price <= 0:
            raise InvalidOrderError(f"limit price must be positive, got {limit_price}")
        expires_at = (
            self._clock() + timedelta(seconds=expires_in_seconds)
            if expires_in_seconds else None
        )
        try:
            order = await self._repo.insert_order(
                db,
                ExchangeOrder(
                    id=generate_id(),
                    user_id=user_id,
                    order_type=OrderType.LIMIT,
                    side=side,
                    amount_coin=amount_coin,
                    amount_fiat=0,
                    status=ExchangeOrderStatus.PENDING,
                    limit_price=limit_price,
                    expires_at=expires_at,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return order

    async def _fail_order(
        self, db: AsyncSession, order: ExchangeOrder, reason: str, now: datetime
    ) -> None:
        try:
            async with db.begin_nested():
                await self._repo.close_pending_order(
                    db, order.id, ExchangeOrderStatus.FAILED, now, reason
                )
        except Exception:
            logger.exception("Could not mark limit order %s failed", order.id)

    async def execute_pending_limit_orders(self, db: AsyncSession) -> dict[str, Any]:
        now = self._clock()
        try:
            sample = await self._oracle.get_current_price(db, self._symbol)
            ensure_fresh(sample, now, self._max_age)
        except AppError as e:
            # Never execute a batch against a stale or missing price
            logger.warning("Limit batch skipped: %s", e.message)
            return {
                "success": False,
                "message": e.message,
                "executed_count": 0,
                "failed_count": 0,
                "expired_count": 0,
                "current_price": None,
            }

        orders = await self._repo.list_pending_limit_orders(db, self._batch_size)
        executed = failed = expired = 0
        touched_users: set[str] = set()
        try:
            for order in orders:
                if order.expires_at is not None and order.expires_at <= now:
                    try:
                        async with db.begin_nested():
                            closed = await self._repo.close_pending_order(
                                db, order.id, ExchangeOrderStatus.EXPIRED, now
                            )
                    except Exception:
                        failed += 1
                        logger.exception("Limit order %s could not be expired", order.id)
                        continue
                    if closed is not None:
                        expired += 1
                    continue
                if order.limit_price is None or not limit_is_executable(
                    order.side, sample.price, order.limit_price
                ):
                    continue

                try:
                    async with db.begin_nested():
                        fill = plan_fill(
                            order.side, order.amount_coin, Currency.COIN,
                            sample.price, self._fee_bps,
                        )
                        filled = await self._repo.fill_pending_order(
                            db, order.id, fill.amount_coin, fill.amount_fiat, fill.price,
                            fill.fee if fill.receive_currency == Currency.COIN else 0,
                            fill.fee if fill.receive_currency == Currency.FIAT else 0,
                            now,
                        )
                        if filled is None:
                            continue
                        await self._apply_fill(db, order.user_id, fill, order.id)
                    executed += 1
                    touched_users.add(order.user_id)
                except InsufficientBalanceError as e:
                    failed += 1
                    logger.info("Limit order %s failed: %s", order.id, e.message)
                    await self._fail_order(db, order, e.message, now)
                except Exception as e:
                    failed += 1
                    logger.exception("Limit order %s execution error", order.id)
                    await self._fail_order(db, order, str(e)[:200], now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Limit batch @ %s: executed=%d failed=%d expired=%d",
            sample.price, executed, failed, expired,
        )
        for user_id in sorted(touched_users):
            await self._publish(BALANCE_CHANGED, {"user_id": user_id})
        if executed:
            await self._publish(
                LIMIT_ORDERS_EXECUTED,
                {"executed_count": executed, "price": str(sample.price)},
            )
        return {
            "success": True,
            "message": f"{executed} executed, {failed} failed, {expired} expired",
            "executed_count": executed,
            "failed_count": failed,
            "expired_count": expired,
            "current_price": str(sample.price),
        }

    async def cancel_limit_order(
        self, db: AsyncSession, order_id: str, user_id: str
    ) -> tuple[ExchangeOrder, int]:
        """Owner-only cancel of a pending limit order. Returns (order, penalty charged)."""
        order = await self._repo.get_order(db, order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFoundError(order_id)
        if order.order_type != OrderType.LIMIT or order.status != ExchangeOrderStatus.PENDING:
            raise OrderNotCancellableError(order_id, order.status)

        # Penalty is charged in the currency the order would have paid
        if order.side == ExchangeSide.BUY_COIN and order.limit_price is not None:
            penalty_currency = Currency.FIAT
            base = coin_to_fiat(order.amount_coin, order.limit_price)
        else:
            penalty_currency = Currency.COIN
            base = order.amount_coin
        penalty = calculate_fee(base, self._cancel_fee_bps)

        try:
            cancelled = await self._repo.close_pending_order(
                db, order_id, ExchangeOrderStatus.CANCELLED, self._clock(), "cancelled by user"
            )
            if cancelled is None:
                raise OrderNotCancellableError(order_id, "no longer pending")
            if penalty > 0:
                await self._accounts.debit(
                    db, user_id, penalty_currency, penalty, LedgerEntryType.LIMIT_CANCEL_FEE,
                    f"Cancel fee for limit order {order_id}",
                    reference_type="exchange_order", reference_id=order_id,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if penalty > 0:
            await self._publish(BALANCE_CHANGED, {"user_id": user_id})
        return cancelled, penalty

    async def expire_limit_orders(self, db: AsyncSession) -> dict[str, Any]:
        try:
            expired = await self._repo.expire_overdue_orders(db, self._clock())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return {
            "success": True,
            "message": f"{len(expired)} limit orders expired",
            "expired_count": len(expired),
        }

    async def list_orders(
        self, db: AsyncSession, user_id: str, status: str | None, limit: int
    ) -> list[ExchangeOrder]:
        return await self._repo.list_user_orders(db, user_id, status, limit)
