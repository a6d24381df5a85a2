"""Price feed ingestion and lookup over the rates table."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.datetime_utils import utc_now
from src.rz_common.errors import InvalidOrderError
from src.rz_exchange.domain.models import PriceSample
from src.rz_exchange.infrastructure.price_oracle import RatesPriceOracle


class PriceFeedService:
    def __init__(self, oracle: RatesPriceOracle | None = None) -> None:
        self._oracle = oracle or RatesPriceOracle()

    async def get_price(self, db: AsyncSession, symbol: str) -> PriceSample:
        return await self._oracle.get_current_price(db, symbol)

    async def record_price(
        self,
        db: AsyncSession,
        symbol: str,
        price: Decimal,
        observed_at: datetime | None = None,
    ) -> PriceSample:
        if price <= 0:
            raise InvalidOrderError(f"price must be positive, got {price}")
        try:
            sample = await self._oracle.record_price(
                db, symbol.upper(), price, observed_at or utc_now()
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return sample
