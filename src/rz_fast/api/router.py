"""rz_fast REST endpoints.

GET  /fast/pools?category=            — rounds currently running
GET  /fast/history/{asset_symbol}     — completed round results
POST /fast/pools/{pool_id}/bets       — place a bet
POST /fast/rollover?category=         — open missing rounds (admin/scheduler)
POST /fast/settle-due                 — settle ended rounds (admin/scheduler)
POST /fast/pools/{pool_id}/settle     — settle one round (admin)
POST /fast/pools/{pool_id}/adjust-opening-price  (admin)
POST /fast/assets/{asset_symbol}/pause-refund    (admin)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.database import get_db_session
from src.rz_common.response import ApiResponse, success_response
from src.rz_fast.application.schemas import (
    FastBetItem,
    FastPoolItem,
    FastPoolResultItem,
    PlaceBetRequest,
)
from src.rz_fast.application.service import FastPoolScheduler
from src.rz_gateway.auth.dependencies import CurrentUser, get_current_user, require_admin
from src.rz_gateway.middleware.request_log import request_id_of

router = APIRouter(prefix="/fast", tags=["fast"])

_service = FastPoolScheduler()


@router.get("/pools")
async def get_active_pools(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    category: str | None = Query(None),
) -> ApiResponse:
    pools = await _service.get_active_pools(db, category)
    data = [FastPoolItem.from_domain(p).model_dump() for p in pools]
    return success_response(data, request_id_of(request))


@router.get("/history/{asset_symbol}")
async def get_pool_history(
    asset_symbol: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    results = await _service.get_pool_history(db, asset_symbol.upper(), limit)
    data = [FastPoolResultItem.from_domain(r).model_dump() for r in results]
    return success_response(data, request_id_of(request))


@router.post("/pools/{pool_id}/bets")
async def place_bet(
    pool_id: str,
    body: PlaceBetRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    bet = await _service.place_bet(
        db, current_user.user_id, pool_id, body.side.value, body.stake_cents
    )
    return success_response(FastBetItem.from_domain(bet).model_dump(), request_id_of(request))


@router.post("/rollover")
async def ensure_rounds(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    category: str | None = Query(None),
) -> ApiResponse:
    report = await _service.ensure_rounds(db, category)
    report["pools"] = [FastPoolItem.from_domain(p).model_dump() for p in report["pools"]]
    return success_response(report, request_id_of(request))


@router.post("/settle-due")
async def settle_due_pools(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.settle_due_pools(db)
    return success_response(data, request_id_of(request))


@router.post("/pools/{pool_id}/settle")
async def settle_pool(
    pool_id: str,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.settle_pool(db, pool_id)
    return success_response(data, request_id_of(request))


@router.post("/pools/{pool_id}/adjust-opening-price")
async def adjust_opening_price(
    pool_id: str,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.adjust_opening_price(db, pool_id)
    return success_response(data, request_id_of(request))


@router.post("/assets/{asset_symbol}/pause-refund")
async def refund_paused_asset(
    asset_symbol: str,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.refund_paused_asset(db, asset_symbol.upper())
    return success_response(data, request_id_of(request))
