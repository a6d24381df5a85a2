"""Pydantic schemas for rz_exchange API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.rz_common.enums import Currency, ExchangeSide
from src.rz_exchange.domain.models import ExchangeOrder, PriceSample

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class MarketOrderRequest(BaseModel):
    side: ExchangeSide
    amount_cents: int = Field(..., gt=0)
    input_currency: Currency


class LimitOrderRequest(BaseModel):
    side: ExchangeSide
    amount_coin_cents: int = Field(..., gt=0)
    limit_price: Decimal = Field(..., gt=0, description="FIAT per COIN")
    expires_in_seconds: int | None = Field(None, gt=0)


class PriceUpdateRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    price: Decimal = Field(..., gt=0)
    observed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ExchangeOrderItem(BaseModel):
    id: str
    order_type: str
    side: str
    status: str
    amount_coin_cents: int
    amount_fiat_cents: int
    limit_price: str | None
    executed_price: str | None
    fee_coin_cents: int
    fee_fiat_cents: int
    failure_reason: str | None
    expires_at: str | None
    created_at: str

    @classmethod
    def from_domain(cls, o: ExchangeOrder) -> "ExchangeOrderItem":
        return cls(
            id=o.id,
            order_type=o.order_type,
            side=o.side,
            status=o.status,
            amount_coin_cents=o.amount_coin,
            amount_fiat_cents=o.amount_fiat,
            limit_price=str(o.limit_price) if o.limit_price is not None else None,
            executed_price=str(o.executed_price) if o.executed_price is not None else None,
            fee_coin_cents=o.fee_coin,
            fee_fiat_cents=o.fee_fiat,
            failure_reason=o.failure_reason,
            expires_at=o.expires_at.isoformat() if o.expires_at else None,
            created_at=o.created_at.isoformat() if o.created_at else "",
        )


class MarketOrderResponse(BaseModel):
    order: ExchangeOrderItem
    new_balances: dict[str, int]
    amount_converted: int
    fee_charged: int


class PriceResponse(BaseModel):
    symbol: str
    price: str
    observed_at: str

    @classmethod
    def from_sample(cls, s: PriceSample) -> "PriceResponse":
        return cls(symbol=s.symbol, price=str(s.price), observed_at=s.observed_at.isoformat())
