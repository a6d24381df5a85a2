"""rz_reconciliation REST endpoints (admin only).

POST /admin/reconciliation/validate  — run a check, persist a report per currency
GET  /admin/reconciliation/reports   — most recent reports
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.database import get_db_session
from src.rz_common.response import ApiResponse, success_response
from src.rz_gateway.auth.dependencies import CurrentUser, require_admin
from src.rz_gateway.middleware.request_log import request_id_of
from src.rz_reconciliation.application.schemas import ReconciliationReportItem
from src.rz_reconciliation.application.service import ReconciliationValidator

router = APIRouter(prefix="/admin/reconciliation", tags=["reconciliation"])

_service = ReconciliationValidator()


@router.post("/validate")
async def validate(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    reports = await _service.validate(db)
    reconciled = all(r.is_reconciled for r in reports)
    data = {
        "success": True,
        "message": "Balances reconciled" if reconciled else "Discrepancy found",
        "is_reconciled": reconciled,
        "reports": [ReconciliationReportItem.from_domain(r).model_dump() for r in reports],
    }
    return success_response(data, request_id_of(request))


@router.get("/reports")
async def list_reports(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    reports = await _service.list_reports(db, limit)
    data = [ReconciliationReportItem.from_domain(r).model_dump() for r in reports]
    return success_response(data, request_id_of(request))
