"""rz_account REST API — balance, ledger, deposit, withdraw. All require JWT."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_account.application.schemas import FundingRequest
from src.rz_account.application.service import AccountApplicationService
from src.rz_common.database import get_db_session
from src.rz_common.response import ApiResponse, success_response
from src.rz_gateway.auth.dependencies import CurrentUser, get_current_user
from src.rz_gateway.middleware.request_log import request_id_of

router = APIRouter(prefix="/account", tags=["account"])

_service = AccountApplicationService()


@router.get("/balance")
async def get_balance(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_balance(db, current_user.user_id)
    return success_response(data.model_dump(), request_id_of(request))


@router.post("/deposit")
async def deposit(
    body: FundingRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.deposit(
        db, current_user.user_id, body.currency.value, body.amount_cents
    )
    return success_response(data.model_dump(), request_id_of(request))


@router.post("/withdraw")
async def withdraw(
    body: FundingRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.withdraw(
        db, current_user.user_id, body.currency.value, body.amount_cents
    )
    return success_response(data.model_dump(), request_id_of(request))


@router.get("/ledger")
async def list_ledger(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    entry_type: str | None = Query(None, description="Filter by LedgerEntryType"),
) -> ApiResponse:
    data = await _service.list_ledger(db, current_user.user_id, cursor, limit, entry_type)
    return success_response(data.model_dump(), request_id_of(request))
