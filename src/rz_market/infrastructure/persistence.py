"""MarketRepository — concrete implementation of MarketRepositoryProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
Position status changes are guarded by ``WHERE status = 'active'`` so a
position can leave ``active`` exactly once, whoever gets there first.
"""

from datetime import datetime

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.errors import InternalError
from src.rz_market.domain.models import Market, Position

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_MARKET_COLUMNS = "id, title, options, status, closes_at, winning_option, settled_at, created_at"
_POSITION_COLUMNS = (
    "id, user_id, market_id, option_chosen, stake_amount, entry_multiple_bps, "
    "status, payout_amount, created_at, settled_at"
)

_INSERT_MARKET_SQL = text(f"""
    INSERT INTO markets (id, title, options, status, closes_at)
    VALUES (:id, :title, :options, 'ACTIVE', :closes_at)
    RETURNING {_MARKET_COLUMNS}
""")

_GET_MARKET_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
""")

_SETTLE_MARKET_SQL = text("""
    UPDATE markets
    SET status = 'SETTLED',
        winning_option = :winning_option,
        settled_at = :settled_at,
        updated_at = NOW()
    WHERE id = :market_id AND status != 'SETTLED'
    RETURNING id
""")

_CLOSE_EXPIRED_SQL = text("""
    UPDATE markets
    SET status = 'CLOSED', updated_at = NOW()
    WHERE status = 'ACTIVE'
      AND closes_at IS NOT NULL
      AND closes_at <= :now
    RETURNING id
""")

_INSERT_POSITION_SQL = text(f"""
    INSERT INTO positions
        (id, user_id, market_id, option_chosen, stake_amount,
         entry_multiple_bps, status, payout_amount)
    VALUES
        (:id, :user_id, :market_id, :option_chosen, :stake_amount,
         :entry_multiple_bps, :status, :payout_amount)
    RETURNING {_POSITION_COLUMNS}
""")

_GET_POSITION_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE id = :position_id
""")

_LIST_MARKET_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE market_id = :market_id
      AND status IN :statuses
    ORDER BY created_at, id
""").bindparams(bindparam("statuses", expanding=True))

_LIST_USER_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE user_id = :user_id
      AND (CAST(:market_id AS TEXT) IS NULL OR market_id = CAST(:market_id AS TEXT))
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY created_at DESC, id DESC
""")

_TRANSITION_POSITION_SQL = text(f"""
    UPDATE positions
    SET status = :new_status,
        payout_amount = :payout_amount,
        settled_at = :settled_at
    WHERE id = :position_id AND status = 'active'
    RETURNING {_POSITION_COLUMNS}
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_market(row: object) -> Market:
    return Market(
        id=row.id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        options=list(row.options),  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        closes_at=row.closes_at,  # type: ignore[attr-defined]
        winning_option=row.winning_option,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_position(row: object) -> Position:
    return Position(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        option_chosen=row.option_chosen,  # type: ignore[attr-defined]
        stake_amount=row.stake_amount,  # type: ignore[attr-defined]
        entry_multiple_bps=row.entry_multiple_bps,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        payout_amount=row.payout_amount,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MarketRepository:
    """Concrete repository — caller owns the transaction."""

    async def create_market(
        self,
        db: AsyncSession,
        market_id: str,
        title: str,
        options: list[str],
        closes_at: datetime | None,
    ) -> Market:
        result = await db.execute(
            _INSERT_MARKET_SQL,
            {"id": market_id, "title": title, "options": options, "closes_at": closes_at},
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Market insert returned no rows")
        return _row_to_market(row)

    async def get_market(self, db: AsyncSession, market_id: str) -> Market | None:
        result = await db.execute(_GET_MARKET_SQL, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_market(row) if row else None

    async def mark_market_settled(
        self, db: AsyncSession, market_id: str, winning_option: str, settled_at: datetime
    ) -> bool:
        result = await db.execute(
            _SETTLE_MARKET_SQL,
            {"market_id": market_id, "winning_option": winning_option, "settled_at": settled_at},
        )
        return result.fetchone() is not None

    async def close_expired_markets(self, db: AsyncSession, now: datetime) -> list[str]:
        result = await db.execute(_CLOSE_EXPIRED_SQL, {"now": now})
        return [row.id for row in result.fetchall()]

    async def insert_position(self, db: AsyncSession, position: Position) -> Position:
        result = await db.execute(
            _INSERT_POSITION_SQL,
            {
                "id": position.id,
                "user_id": position.user_id,
                "market_id": position.market_id,
                "option_chosen": position.option_chosen,
                "stake_amount": position.stake_amount,
                "entry_multiple_bps": position.entry_multiple_bps,
                "status": position.status,
                "payout_amount": position.payout_amount,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Position insert returned no rows")
        return _row_to_position(row)

    async def get_position(self, db: AsyncSession, position_id: str) -> Position | None:
        result = await db.execute(_GET_POSITION_SQL, {"position_id": position_id})
        row = result.fetchone()
        return _row_to_position(row) if row else None

    async def list_market_positions(
        self, db: AsyncSession, market_id: str, statuses: tuple[str, ...]
    ) -> list[Position]:
        result = await db.execute(
            _LIST_MARKET_POSITIONS_SQL,
            {"market_id": market_id, "statuses": list(statuses)},
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def list_user_positions(
        self, db: AsyncSession, user_id: str, market_id: str | None, status: str | None
    ) -> list[Position]:
        result = await db.execute(
            _LIST_USER_POSITIONS_SQL,
            {"user_id": user_id, "market_id": market_id, "status": status},
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def transition_position(
        self,
        db: AsyncSession,
        position_id: str,
        new_status: str,
        payout_amount: int,
        settled_at: datetime,
    ) -> Position | None:
        result = await db.execute(
            _TRANSITION_POSITION_SQL,
            {
                "position_id": position_id,
                "new_status": new_status,
                "payout_amount": payout_amount,
                "settled_at": settled_at,
            },
        )
        row = result.fetchone()
        return _row_to_position(row) if row else None
