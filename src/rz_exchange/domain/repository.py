"""Repository Protocols — dependency inversion for testability."""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_exchange.domain.models import ExchangeOrder, PriceSample


class PriceOracle(Protocol):
    async def get_current_price(self, db: AsyncSession, symbol: str) -> PriceSample:
        """Latest sample. Raises PriceUnavailableError if none was ever recorded."""
        ...


class PriceRecorder(Protocol):
    async def record_price(
        self, db: AsyncSession, symbol: str, price: Decimal, observed_at: datetime
    ) -> PriceSample: ...


class ExchangeOrderRepositoryProtocol(Protocol):
    async def insert_order(self, db: AsyncSession, order: ExchangeOrder) -> ExchangeOrder: ...

    async def get_order(self, db: AsyncSession, order_id: str) -> ExchangeOrder | None: ...

    async def list_user_orders(
        self, db: AsyncSession, user_id: str, status: str | None, limit: int
    ) -> list[ExchangeOrder]: ...

    async def list_pending_limit_orders(
        self, db: AsyncSession, limit: int
    ) -> list[ExchangeOrder]:
        """Oldest first."""
        ...

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
        """pending -> filled. None when the order was no longer pending."""
        ...

    async def close_pending_order(
        self,
        db: AsyncSession,
        order_id: str,
        new_status: str,
        at: datetime,
        reason: str | None = None,
    ) -> ExchangeOrder | None:
        """pending -> cancelled | expired | failed. None when no longer pending."""
        ...

    async def expire_overdue_orders(self, db: AsyncSession, now: datetime) -> list[str]: ...
