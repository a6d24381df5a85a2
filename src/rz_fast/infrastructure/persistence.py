"""FastPoolRepository — concrete implementation of FastPoolRepositoryProtocol.

Bets are only ever processed through ``WHERE processed = false``, which makes
settlement and refunds safe to re-run: a bet that already has its payout row
is skipped instead of paid twice.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_fast.domain.models import FastBet, FastPool, FastPoolResult

_POOL_COLUMNS = (
    "id, round_number, category, asset_symbol, asset_name, question, "
    "round_start, round_end, opening_price, status, paused, base_odds_bps, "
    "closing_price, result, price_change_percent, created_at"
)
_BET_COLUMNS = "id, user_id, pool_id, side, stake, odds_bps, processed, payout_amount, created_at"
_RESULT_COLUMNS = (
    "pool_id, asset_symbol, opening_price, closing_price, price_change_percent, "
    "result, total_up, total_down, winners_count, total_payout, created_at"
)

_NEXT_ROUND_SQL = text("SELECT COALESCE(MAX(round_number), 0) + 1 AS next_round FROM fast_pools")

_INSERT_POOL_SQL = text(f"""
    INSERT INTO fast_pools
        (id, round_number, category, asset_symbol, asset_name, question,
         round_start, round_end, opening_price, status, paused, base_odds_bps)
    VALUES
        (:id, :round_number, :category, :asset_symbol, :asset_name, :question,
         :round_start, :round_end, :opening_price, :status, :paused, :base_odds_bps)
    ON CONFLICT (asset_symbol, round_start) DO NOTHING
    RETURNING {_POOL_COLUMNS}
""")

_GET_POOL_SQL = text(f"SELECT {_POOL_COLUMNS} FROM fast_pools WHERE id = :pool_id")

_LIST_OPEN_POOLS_SQL = text(f"""
    SELECT {_POOL_COLUMNS}
    FROM fast_pools
    WHERE category = :category
      AND status = 'active'
      AND round_end > :now
    ORDER BY asset_symbol, round_start
""")

_LIST_DUE_POOLS_SQL = text(f"""
    SELECT {_POOL_COLUMNS}
    FROM fast_pools
    WHERE status IN ('active', 'processing')
      AND round_end <= :now
    ORDER BY round_end, id
""")

_LIST_ACTIVE_FOR_ASSET_SQL = text(f"""
    SELECT {_POOL_COLUMNS}
    FROM fast_pools
    WHERE asset_symbol = :asset_symbol
      AND status = 'active'
    ORDER BY round_start
""")

_UPDATE_OPENING_PRICE_SQL = text(f"""
    UPDATE fast_pools
    SET opening_price = :opening_price, updated_at = NOW()
    WHERE id = :pool_id AND status = 'active'
    RETURNING {_POOL_COLUMNS}
""")

_START_PROCESSING_SQL = text(f"""
    UPDATE fast_pools
    SET status = 'processing',
        closing_price = :closing_price,
        result = :result,
        price_change_percent = :price_change_percent,
        updated_at = NOW()
    WHERE id = :pool_id AND status = 'active'
    RETURNING {_POOL_COLUMNS}
""")

_COMPLETE_POOL_SQL = text("""
    UPDATE fast_pools
    SET status = 'completed', updated_at = NOW()
    WHERE id = :pool_id AND status = 'processing'
    RETURNING id
""")

_PAUSE_POOLS_SQL = text("""
    UPDATE fast_pools
    SET paused = TRUE, updated_at = NOW()
    WHERE id IN :pool_ids
    RETURNING id
""").bindparams(bindparam("pool_ids", expanding=True))

# The pool's state is re-checked in the INSERT itself so a bet can never land
# in a round that was paused or closed after the caller last read it.
_INSERT_BET_SQL = text(f"""
    INSERT INTO fast_pool_bets (id, user_id, pool_id, side, stake, odds_bps, processed)
    SELECT :id, :user_id, p.id, :side, :stake, :odds_bps, FALSE
    FROM fast_pools p
    WHERE p.id = :pool_id
      AND p.status = 'active'
      AND p.paused = FALSE
      AND p.round_end > :cutoff
    RETURNING {_BET_COLUMNS}
""")

_LIST_POOL_BETS_SQL = text(f"""
    SELECT {_BET_COLUMNS}
    FROM fast_pool_bets
    WHERE pool_id = :pool_id
    ORDER BY created_at, id
""")

_MARK_BET_PROCESSED_SQL = text(f"""
    UPDATE fast_pool_bets
    SET processed = TRUE, payout_amount = :payout_amount
    WHERE id = :bet_id AND processed = FALSE
    RETURNING {_BET_COLUMNS}
""")

_INSERT_RESULT_SQL = text("""
    INSERT INTO fast_pool_results
        (pool_id, asset_symbol, opening_price, closing_price, price_change_percent,
         result, total_up, total_down, winners_count, total_payout)
    VALUES
        (:pool_id, :asset_symbol, :opening_price, :closing_price, :price_change_percent,
         :result, :total_up, :total_down, :winners_count, :total_payout)
    ON CONFLICT (pool_id) DO NOTHING
""")

_LIST_RESULTS_SQL = text(f"""
    SELECT {_RESULT_COLUMNS}
    FROM fast_pool_results
    WHERE asset_symbol = :asset_symbol
    ORDER BY created_at DESC
    LIMIT :limit
""")


def _row_to_pool(row: object) -> FastPool:
    return FastPool(
        id=row.id,  # type: ignore[attr-defined]
        round_number=row.round_number,  # type: ignore[attr-defined]
        category=row.category,  # type: ignore[attr-defined]
        asset_symbol=row.asset_symbol,  # type: ignore[attr-defined]
        asset_name=row.asset_name,  # type: ignore[attr-defined]
        question=row.question,  # type: ignore[attr-defined]
        round_start=row.round_start,  # type: ignore[attr-defined]
        round_end=row.round_end,  # type: ignore[attr-defined]
        opening_price=row.opening_price,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        paused=row.paused,  # type: ignore[attr-defined]
        base_odds_bps=row.base_odds_bps,  # type: ignore[attr-defined]
        closing_price=row.closing_price,  # type: ignore[attr-defined]
        result=row.result,  # type: ignore[attr-defined]
        price_change_percent=row.price_change_percent,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_bet(row: object) -> FastBet:
    return FastBet(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        pool_id=row.pool_id,  # type: ignore[attr-defined]
        side=row.side,  # type: ignore[attr-defined]
        stake=row.stake,  # type: ignore[attr-defined]
        odds_bps=row.odds_bps,  # type: ignore[attr-defined]
        processed=row.processed,  # type: ignore[attr-defined]
        payout_amount=row.payout_amount,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_result(row: object) -> FastPoolResult:
    return FastPoolResult(
        pool_id=row.pool_id,  # type: ignore[attr-defined]
        asset_symbol=row.asset_symbol,  # type: ignore[attr-defined]
        opening_price=row.opening_price,  # type: ignore[attr-defined]
        closing_price=row.closing_price,  # type: ignore[attr-defined]
        price_change_percent=row.price_change_percent,  # type: ignore[attr-defined]
        result=row.result,  # type: ignore[attr-defined]
        total_up=row.total_up,  # type: ignore[attr-defined]
        total_down=row.total_down,  # type: ignore[attr-defined]
        winners_count=row.winners_count,  # type: ignore[attr-defined]
        total_payout=row.total_payout,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class FastPoolRepository:
    """Concrete repository — caller owns the transaction."""

    async def next_round_number(self, db: AsyncSession) -> int:
        result = await db.execute(_NEXT_ROUND_SQL)
        return int(result.scalar_one())

    async def insert_pool(self, db: AsyncSession, pool: FastPool) -> FastPool | None:
        result = await db.execute(
            _INSERT_POOL_SQL,
            {
                "id": pool.id,
                "round_number": pool.round_number,
                "category": pool.category,
                "asset_symbol": pool.asset_symbol,
                "asset_name": pool.asset_name,
                "question": pool.question,
                "round_start": pool.round_start,
                "round_end": pool.round_end,
                "opening_price": pool.opening_price,
                "status": pool.status,
                "paused": pool.paused,
                "base_odds_bps": pool.base_odds_bps,
            },
        )
        row = result.fetchone()
        return _row_to_pool(row) if row else None

    async def get_pool(self, db: AsyncSession, pool_id: str) -> FastPool | None:
        result = await db.execute(_GET_POOL_SQL, {"pool_id": pool_id})
        row = result.fetchone()
        return _row_to_pool(row) if row else None

    async def list_open_pools(
        self, db: AsyncSession, category: str, now: datetime
    ) -> list[FastPool]:
        result = await db.execute(_LIST_OPEN_POOLS_SQL, {"category": category, "now": now})
        return [_row_to_pool(row) for row in result.fetchall()]

    async def list_due_pools(self, db: AsyncSession, now: datetime) -> list[FastPool]:
        result = await db.execute(_LIST_DUE_POOLS_SQL, {"now": now})
        return [_row_to_pool(row) for row in result.fetchall()]

    async def list_active_pools_for_asset(
        self, db: AsyncSession, asset_symbol: str
    ) -> list[FastPool]:
        result = await db.execute(_LIST_ACTIVE_FOR_ASSET_SQL, {"asset_symbol": asset_symbol})
        return [_row_to_pool(row) for row in result.fetchall()]

    async def update_opening_price(
        self, db: AsyncSession, pool_id: str, opening_price: Decimal
    ) -> FastPool | None:
        result = await db.execute(
            _UPDATE_OPENING_PRICE_SQL, {"pool_id": pool_id, "opening_price": opening_price}
        )
        row = result.fetchone()
        return _row_to_pool(row) if row else None

    async def start_processing(
        self,
        db: AsyncSession,
        pool_id: str,
        closing_price: Decimal,
        result: str,
        price_change_percent: Decimal,
    ) -> FastPool | None:
        res = await db.execute(
            _START_PROCESSING_SQL,
            {
                "pool_id": pool_id,
                "closing_price": closing_price,
                "result": result,
                "price_change_percent": price_change_percent,
            },
        )
        row = res.fetchone()
        return _row_to_pool(row) if row else None

    async def complete_pool(self, db: AsyncSession, pool_id: str) -> bool:
        result = await db.execute(_COMPLETE_POOL_SQL, {"pool_id": pool_id})
        return result.fetchone() is not None

    async def pause_pools(self, db: AsyncSession, pool_ids: list[str]) -> int:
        if not pool_ids:
            return 0
        result = await db.execute(_PAUSE_POOLS_SQL, {"pool_ids": pool_ids})
        return len(result.fetchall())

    async def insert_bet(self, db: AsyncSession, bet: FastBet, cutoff: datetime) -> FastBet | None:
        result = await db.execute(
            _INSERT_BET_SQL,
            {
                "id": bet.id,
                "user_id": bet.user_id,
                "pool_id": bet.pool_id,
                "side": bet.side,
                "stake": bet.stake,
                "odds_bps": bet.odds_bps,
                "cutoff": cutoff,
            },
        )
        row = result.fetchone()
        return _row_to_bet(row) if row else None

    async def list_pool_bets(self, db: AsyncSession, pool_id: str) -> list[FastBet]:
        result = await db.execute(_LIST_POOL_BETS_SQL, {"pool_id": pool_id})
        return [_row_to_bet(row) for row in result.fetchall()]

    async def mark_bet_processed(
        self, db: AsyncSession, bet_id: str, payout_amount: int
    ) -> FastBet | None:
        result = await db.execute(
            _MARK_BET_PROCESSED_SQL, {"bet_id": bet_id, "payout_amount": payout_amount}
        )
        row = result.fetchone()
        return _row_to_bet(row) if row else None

    async def insert_result(self, db: AsyncSession, result: FastPoolResult) -> None:
        await db.execute(
            _INSERT_RESULT_SQL,
            {
                "pool_id": result.pool_id,
                "asset_symbol": result.asset_symbol,
                "opening_price": result.opening_price,
                "closing_price": result.closing_price,
                "price_change_percent": result.price_change_percent,
                "result": result.result,
                "total_up": result.total_up,
                "total_down": result.total_down,
                "winners_count": result.winners_count,
                "total_payout": result.total_payout,
            },
        )

    async def list_results(
        self, db: AsyncSession, asset_symbol: str, limit: int
    ) -> list[FastPoolResult]:
        result = await db.execute(
            _LIST_RESULTS_SQL, {"asset_symbol": asset_symbol, "limit": limit}
        )
        return [_row_to_result(row) for row in result.fetchall()]
