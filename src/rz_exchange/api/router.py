"""rz_exchange REST endpoints.

POST   /exchange/market-order           — convert now at the latest price
POST   /exchange/limit-orders           — place a pending limit order
GET    /exchange/orders                 — caller's orders
DELETE /exchange/limit-orders/{id}      — cancel a pending limit order
GET    /exchange/price                  — latest reference price
POST   /exchange/price                  — record a price sample (admin/feeder)
POST   /exchange/limit-orders/execute   — run the limit batch (admin/scheduler)
POST   /exchange/limit-orders/expire    — expire overdue limit orders (admin/scheduler)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_common.database import get_db_session
from src.rz_common.response import ApiResponse, success_response
from src.rz_exchange.application.price_feed import PriceFeedService
from src.rz_exchange.application.schemas import (
    ExchangeOrderItem,
    LimitOrderRequest,
    MarketOrderRequest,
    MarketOrderResponse,
    PriceResponse,
    PriceUpdateRequest,
)
from src.rz_exchange.application.service import OrderExecutor
from src.rz_gateway.auth.dependencies import CurrentUser, get_current_user, require_admin
from src.rz_gateway.middleware.request_log import request_id_of

router = APIRouter(prefix="/exchange", tags=["exchange"])

_service = OrderExecutor()
_prices = PriceFeedService()


@router.post("/market-order")
async def execute_market_order(
    body: MarketOrderRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.execute_market_order(
        db, current_user.user_id, body.side.value, body.amount_cents, body.input_currency.value
    )
    data = MarketOrderResponse(
        order=ExchangeOrderItem.from_domain(result.order),
        new_balances=result.new_balances,
        amount_converted=result.amount_converted,
        fee_charged=result.fee_charged,
    )
    return success_response(data.model_dump(), request_id_of(request))


@router.post("/limit-orders")
async def place_limit_order(
    body: LimitOrderRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    order = await _service.place_limit_order(
        db, current_user.user_id, body.side.value, body.amount_coin_cents,
        body.limit_price, body.expires_in_seconds,
    )
    return success_response(
        {"order_id": order.id, "status": order.status}, request_id_of(request)
    )


@router.post("/limit-orders/execute")
async def execute_pending_limit_orders(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.execute_pending_limit_orders(db)
    return success_response(data, request_id_of(request))


@router.post("/limit-orders/expire")
async def expire_limit_orders(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.expire_limit_orders(db)
    return success_response(data, request_id_of(request))


@router.delete("/limit-orders/{order_id}")
async def cancel_limit_order(
    order_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    order, penalty = await _service.cancel_limit_order(db, order_id, current_user.user_id)
    data = {**ExchangeOrderItem.from_domain(order).model_dump(), "cancel_fee_cents": penalty}
    return success_response(data, request_id_of(request))


@router.get("/orders")
async def list_orders(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    orders = await _service.list_orders(db, current_user.user_id, status, limit)
    data = [ExchangeOrderItem.from_domain(o).model_dump() for o in orders]
    return success_response(data, request_id_of(request))


@router.get("/price")
async def get_price(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    symbol: str = Query(settings.EXCHANGE_SYMBOL),
) -> ApiResponse:
    sample = await _prices.get_price(db, symbol)
    return success_response(PriceResponse.from_sample(sample).model_dump(), request_id_of(request))


@router.post("/price")
async def record_price(
    body: PriceUpdateRequest,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    sample = await _prices.record_price(db, body.symbol, body.price, body.observed_at)
    return success_response(PriceResponse.from_sample(sample).model_dump(), request_id_of(request))
