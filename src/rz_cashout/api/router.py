"""rz_cashout REST endpoints.

GET  /positions/{position_id}/cashout  — fresh quote
POST /positions/{position_id}/cashout  — cash out at the fresh quote
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_cashout.application.schemas import CashoutQuoteResponse, CashoutResponse
from src.rz_cashout.application.service import CashoutService
from src.rz_common.database import get_db_session
from src.rz_common.enums import PositionStatus
from src.rz_common.response import ApiResponse, success_response
from src.rz_gateway.auth.dependencies import CurrentUser, get_current_user
from src.rz_gateway.middleware.request_log import request_id_of

router = APIRouter(prefix="/positions", tags=["cashout"])

_service = CashoutService()


@router.get("/{position_id}/cashout")
async def quote_cashout(
    position_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    quote = await _service.quote_cashout(db, position_id)
    return success_response(
        CashoutQuoteResponse.from_quote(quote).model_dump(), request_id_of(request)
    )


@router.post("/{position_id}/cashout")
async def perform_cashout(
    position_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    quote, entry, balance_after = await _service.perform_cashout(
        db, position_id, current_user.user_id
    )
    data = CashoutResponse(
        **CashoutQuoteResponse.from_quote(quote).model_dump(),
        status=PositionStatus.CASHED_OUT.value,
        ledger_entry_id=entry.id,
        balance_after_cents=balance_after,
    )
    return success_response(data.model_dump(), request_id_of(request))
