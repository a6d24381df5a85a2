"""Repository Protocol — dependency inversion for testability.

Unit tests inject a fake that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_market.domain.models import Market, Position


class MarketRepositoryProtocol(Protocol):
    async def create_market(
        self,
        db: AsyncSession,
        market_id: str,
        title: str,
        options: list[str],
        closes_at: datetime | None,
    ) -> Market: ...

    async def get_market(self, db: AsyncSession, market_id: str) -> Market | None: ...

    async def mark_market_settled(
        self, db: AsyncSession, market_id: str, winning_option: str, settled_at: datetime
    ) -> bool: ...

    async def close_expired_markets(self, db: AsyncSession, now: datetime) -> list[str]: ...

    async def insert_position(self, db: AsyncSession, position: Position) -> Position: ...

    async def get_position(self, db: AsyncSession, position_id: str) -> Position | None: ...

    async def list_market_positions(
        self, db: AsyncSession, market_id: str, statuses: tuple[str, ...]
    ) -> list[Position]: ...

    async def list_user_positions(
        self, db: AsyncSession, user_id: str, market_id: str | None, status: str | None
    ) -> list[Position]: ...

    async def transition_position(
        self,
        db: AsyncSession,
        position_id: str,
        new_status: str,
        payout_amount: int,
        settled_at: datetime,
    ) -> Position | None:
        """active -> new_status. Returns None when the position was not active."""
        ...
