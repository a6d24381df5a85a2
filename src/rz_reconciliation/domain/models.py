"""Domain models for rz_reconciliation — pure dataclasses."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class UserDiscrepancy:
    user_id: str
    observed_balance: int        # cents on the account row
    ledger_balance: int          # cents derived from ledger rows
    difference: int              # observed - ledger


@dataclass
class ReconciliationReport:
    currency: str
    total_users: int
    total_balance_observed: int
    total_balance_from_ledger: int
    discrepancy: int             # observed - ledger
    is_reconciled: bool
    status: str                  # ReconciliationStatus value
    severity: str                # Severity value
    user_discrepancies: list[UserDiscrepancy] = field(default_factory=list)
    id: int | None = None
    checked_at: datetime | None = None
