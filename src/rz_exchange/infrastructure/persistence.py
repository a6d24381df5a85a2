"""ExchangeOrderRepository — concrete implementation of ExchangeOrderRepositoryProtocol.

Every status change is a conditional UPDATE guarded by ``status = 'pending'``;
0 rows returned means another execution pass, cancel or expiry got there
first, and the caller must treat the order as already handled.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.errors import InternalError
from src.rz_exchange.domain.models import ExchangeOrder

_ORDER_COLUMNS = (
    "id, user_id, order_type, side, amount_coin, amount_fiat, status, "
    "limit_price, executed_price, fee_coin, fee_fiat, failure_reason, "
    "expires_at, created_at, filled_at, cancelled_at"
)

_INSERT_ORDER_SQL = text(f"""
    INSERT INTO exchange_orders
        (id, user_id, order_type, side, amount_coin, amount_fiat, status,
         limit_price, executed_price, fee_coin, fee_fiat, expires_at, filled_at)
    VALUES
        (:id, :user_id, :order_type, :side, :amount_coin, :amount_fiat, :status,
         :limit_price, :executed_price, :fee_coin, :fee_fiat, :expires_at, :filled_at)
    RETURNING {_ORDER_COLUMNS}
""")

_GET_ORDER_SQL = text(f"SELECT {_ORDER_COLUMNS} FROM exchange_orders WHERE id = :order_id")

_LIST_USER_ORDERS_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM exchange_orders
    WHERE user_id = :user_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_LIST_PENDING_LIMIT_SQL = text(f"""
    SELECT {_ORDER_COLUMNS}
    FROM exchange_orders
    WHERE order_type = 'limit' AND status = 'pending'
    ORDER BY created_at ASC, id ASC
    LIMIT :limit
""")

_FILL_ORDER_SQL = text(f"""
    UPDATE exchange_orders
    SET status = 'filled',
        amount_coin = :amount_coin,
        amount_fiat = :amount_fiat,
        executed_price = :executed_price,
        fee_coin = :fee_coin,
        fee_fiat = :fee_fiat,
        filled_at = :filled_at,
        updated_at = NOW()
    WHERE id = :order_id AND status = 'pending'
    RETURNING {_ORDER_COLUMNS}
""")

_CLOSE_ORDER_SQL = text(f"""
    UPDATE exchange_orders
    SET status = :new_status,
        failure_reason = :reason,
        cancelled_at = :at,
        updated_at = NOW()
    WHERE id = :order_id AND status = 'pending'
    RETURNING {_ORDER_COLUMNS}
""")

_EXPIRE_OVERDUE_SQL = text("""
    UPDATE exchange_orders
    SET status = 'expired', cancelled_at = :now, updated_at = NOW()
    WHERE order_type = 'limit'
      AND status = 'pending'
      AND expires_at IS NOT NULL
      AND expires_at <= :now
    RETURNING id
""")


def _row_to_order(row: object) -> ExchangeOrder:
    return ExchangeOrder(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        order_type=row.order_type,  # type: ignore[attr-defined]
        side=row.side,  # type: ignore[attr-defined]
        amount_coin=row.amount_coin,  # type: ignore[attr-defined]
        amount_fiat=row.amount_fiat,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        limit_price=row.limit_price,  # type: ignore[attr-defined]
        executed_price=row.executed_price,  # type: ignore[attr-defined]
        fee_coin=row.fee_coin,  # type: ignore[attr-defined]
        fee_fiat=row.fee_fiat,  # type: ignore[attr-defined]
        failure_reason=row.failure_reason,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        filled_at=row.filled_at,  # type: ignore[attr-defined]
        cancelled_at=row.cancelled_at,  # type: ignore[attr-defined]
    )


class ExchangeOrderRepository:
    """Concrete repository — caller owns the transaction."""

    async def insert_order(self, db: AsyncSession, order: ExchangeOrder) -> ExchangeOrder:
        result = await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "user_id": order.user_id,
                "order_type": order.order_type,
                "side": order.side,
                "amount_coin": order.amount_coin,
                "amount_fiat": order.amount_fiat,
                "status": order.status,
                "limit_price": order.limit_price,
                "executed_price": order.executed_price,
                "fee_coin": order.fee_coin,
                "fee_fiat": order.fee_fiat,
                "expires_at": order.expires_at,
                "filled_at": order.filled_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Exchange order insert returned no rows")
        return _row_to_order(row)

    async def get_order(self, db: AsyncSession, order_id: str) -> ExchangeOrder | None:
        result = await db.execute(_GET_ORDER_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def list_user_orders(
        self, db: AsyncSession, user_id: str, status: str | None, limit: int
    ) -> list[ExchangeOrder]:
        result = await db.execute(
            _LIST_USER_ORDERS_SQL, {"user_id": user_id, "status": status, "limit": limit}
        )
        return [_row_to_order(row) for row in result.fetchall()]

    async def list_pending_limit_orders(
        self, db: AsyncSession, limit: int
    ) -> list[ExchangeOrder]:
        result = await db.execute(_LIST_PENDING_LIMIT_SQL, {"limit": limit})
        return [_row_to_order(row) for row in result.fetchall()]

    async def fill_pending_order(
        self,
        db: AsyncSession,
        order_id: str,
        amount_coin: int,
        amount_fiat: int,
        executed_price: Decimal,
        fee_coin: int,
        fee_fiat: int,
        filled_at: datetime,
    ) -> ExchangeOrder | None:
        result = await db.execute(
            _FILL_ORDER_SQL,
            {
                "order_id": order_id,
                "amount_coin": amount_coin,
                "amount_fiat": amount_fiat,
                "executed_price": executed_price,
                "fee_coin": fee_coin,
                "fee_fiat": fee_fiat,
                "filled_at": filled_at,
            },
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def close_pending_order(
        self,
        db: AsyncSession,
        order_id: str,
        new_status: str,
        at: datetime,
        reason: str | None = None,
    ) -> ExchangeOrder | None:
        result = await db.execute(
            _CLOSE_ORDER_SQL,
            {"order_id": order_id, "new_status": new_status, "at": at, "reason": reason},
        )
        row = result.fetchone()
        return _row_to_order(row) if row else None

    async def expire_overdue_orders(self, db: AsyncSession, now: datetime) -> list[str]:
        result = await db.execute(_EXPIRE_OVERDUE_SQL, {"now": now})
        return [row.id for row in result.fetchall()]
