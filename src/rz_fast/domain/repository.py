"""Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_fast.domain.models import FastBet, FastPool, FastPoolResult


class FastPoolRepositoryProtocol(Protocol):
    async def next_round_number(self, db: AsyncSession) -> int: ...

    async def insert_pool(self, db: AsyncSession, pool: FastPool) -> FastPool | None:
        """None when the asset already has a round starting at ``pool.round_start``."""
        ...

    async def get_pool(self, db: AsyncSession, pool_id: str) -> FastPool | None: ...

    async def list_open_pools(
        self, db: AsyncSession, category: str, now: datetime
    ) -> list[FastPool]:
        """status=active, round_end > now. Paused pools included."""
        ...

    async def list_due_pools(self, db: AsyncSession, now: datetime) -> list[FastPool]:
        """status in (active, processing) and round_end <= now."""
        ...

    async def list_active_pools_for_asset(
        self, db: AsyncSession, asset_symbol: str
    ) -> list[FastPool]: ...

    async def update_opening_price(
        self, db: AsyncSession, pool_id: str, opening_price: Decimal
    ) -> FastPool | None: ...

    async def start_processing(
        self,
        db: AsyncSession,
        pool_id: str,
        closing_price: Decimal,
        result: str,
        price_change_percent: Decimal,
    ) -> FastPool | None:
        """active -> processing, capturing the closing price once."""
        ...

    async def complete_pool(self, db: AsyncSession, pool_id: str) -> bool: ...

    async def pause_pools(self, db: AsyncSession, pool_ids: list[str]) -> int: ...

    async def insert_bet(self, db: AsyncSession, bet: FastBet, cutoff: datetime) -> FastBet | None:
        """Insert only while the pool is active, unpaused and round_end > cutoff."""
        ...

    async def list_pool_bets(self, db: AsyncSession, pool_id: str) -> list[FastBet]: ...

    async def mark_bet_processed(
        self, db: AsyncSession, bet_id: str, payout_amount: int
    ) -> FastBet | None:
        """processed false -> true. None if already processed."""
        ...

    async def insert_result(self, db: AsyncSession, result: FastPoolResult) -> None: ...

    async def list_results(
        self, db: AsyncSession, asset_symbol: str, limit: int
    ) -> list[FastPoolResult]: ...
