"""RatesPriceOracle — latest reference price per symbol from the ``rates`` table.

The feed ingester (an external process, or the admin price endpoint) upserts
one row per symbol; readers get the price together with its observation time
so callers can apply the freshness gate.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.errors import PriceUnavailableError
from src.rz_exchange.domain.models import PriceSample

_GET_RATE_SQL = text("""
    SELECT symbol, price, observed_at
    FROM rates
    WHERE symbol = :symbol
""")

# Older samples never overwrite newer ones
_UPSERT_RATE_SQL = text("""
    INSERT INTO rates (symbol, price, observed_at)
    VALUES (:symbol, :price, :observed_at)
    ON CONFLICT (symbol) DO UPDATE
        SET price = EXCLUDED.price,
            observed_at = EXCLUDED.observed_at,
            updated_at = NOW()
        WHERE rates.observed_at <= EXCLUDED.observed_at
    RETURNING symbol, price, observed_at
""")


class RatesPriceOracle:
    async def get_current_price(self, db: AsyncSession, symbol: str) -> PriceSample:
        result = await db.execute(_GET_RATE_SQL, {"symbol": symbol})
        row = result.fetchone()
        if row is None:
            raise PriceUnavailableError(symbol)
        return PriceSample(symbol=row.symbol, price=Decimal(row.price), observed_at=row.observed_at)

    async def record_price(
        self, db: AsyncSession, symbol: str, price: Decimal, observed_at: datetime
    ) -> PriceSample:
        result = await db.execute(
            _UPSERT_RATE_SQL, {"symbol": symbol, "price": price, "observed_at": observed_at}
        )
        row = result.fetchone()
        if row is None:
            # A newer sample is already stored; report that one
            return await self.get_current_price(db, symbol)
        return PriceSample(symbol=row.symbol, price=Decimal(row.price), observed_at=row.observed_at)
