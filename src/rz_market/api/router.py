"""rz_market REST endpoints.

GET  /markets/positions                — caller's positions
POST /markets                          — create market (admin)
POST /markets/close-expired            — close markets past closes_at (admin)
GET  /markets/{market_id}              — market detail
GET  /markets/{market_id}/pools        — live pool snapshot
POST /markets/{market_id}/positions    — open a position
POST /markets/{market_id}/settle       — pay winners (admin)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.database import get_db_session
from src.rz_common.response import ApiResponse, success_response
from src.rz_gateway.auth.dependencies import CurrentUser, get_current_user, require_admin
from src.rz_gateway.middleware.request_log import request_id_of
from src.rz_market.application.schemas import (
    CreateMarketRequest,
    MarketItem,
    OpenPositionRequest,
    PoolSnapshotResponse,
    PositionItem,
    SettleMarketRequest,
)
from src.rz_market.application.service import MarketApplicationService

router = APIRouter(prefix="/markets", tags=["markets"])

_service = MarketApplicationService()


@router.get("/positions")
async def list_positions(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    market_id: str | None = Query(None),
    status: str | None = Query(None, description="Filter by position status"),
) -> ApiResponse:
    positions = await _service.list_positions(db, current_user.user_id, market_id, status)
    data = [PositionItem.from_domain(p).model_dump() for p in positions]
    return success_response(data, request_id_of(request))


@router.post("")
async def create_market(
    body: CreateMarketRequest,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    market = await _service.create_market(db, body.title, body.options, body.closes_at)
    return success_response(MarketItem.from_domain(market).model_dump(), request_id_of(request))


@router.post("/close-expired")
async def close_expired_markets(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.close_expired_markets(db)
    return success_response(data, request_id_of(request))


@router.get("/{market_id}")
async def get_market(
    market_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    market = await _service.get_market(db, market_id)
    return success_response(MarketItem.from_domain(market).model_dump(), request_id_of(request))


@router.get("/{market_id}/pools")
async def get_pools(
    market_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    snapshot = await _service.compute_pools(db, market_id)
    data = PoolSnapshotResponse.from_snapshot(snapshot).model_dump()
    return success_response(data, request_id_of(request))


@router.post("/{market_id}/positions")
async def open_position(
    market_id: str,
    body: OpenPositionRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    position = await _service.open_position(
        db, current_user.user_id, market_id, body.option, body.stake_cents
    )
    return success_response(PositionItem.from_domain(position).model_dump(), request_id_of(request))


@router.post("/{market_id}/settle")
async def settle_market(
    market_id: str,
    body: SettleMarketRequest,
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    data = await _service.settle_market(db, market_id, body.winning_option)
    return success_response(data, request_id_of(request))
