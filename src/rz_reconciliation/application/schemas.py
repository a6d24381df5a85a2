"""Pydantic schemas for rz_reconciliation API."""

from dataclasses import asdict
from typing import Any

from pydantic import BaseModel

from src.rz_reconciliation.domain.models import ReconciliationReport


class ReconciliationReportItem(BaseModel):
    id: int | None
    currency: str
    total_users: int
    observed_balance_total: int
    ledger_derived_total: int
    discrepancy: int
    is_reconciled: bool
    status: str
    severity: str
    user_discrepancies: list[dict[str, Any]]
    checked_at: str | None

    @classmethod
    def from_domain(cls, r: ReconciliationReport) -> "ReconciliationReportItem":
        return cls(
            id=r.id,
            currency=r.currency,
            total_users=r.total_users,
            observed_balance_total=r.total_balance_observed,
            ledger_derived_total=r.total_balance_from_ledger,
            discrepancy=r.discrepancy,
            is_reconciled=r.is_reconciled,
            status=r.status,
            severity=r.severity,
            user_discrepancies=[asdict(u) for u in r.user_discrepancies],
            checked_at=r.checked_at.isoformat() if r.checked_at else None,
        )
