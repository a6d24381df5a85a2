"""Classification of a reconciliation run. Pure; no I/O."""

from src.rz_common.enums import ReconciliationStatus, Severity
from src.rz_reconciliation.domain.models import UserDiscrepancy


def is_within_epsilon(discrepancy: int, epsilon_cents: int) -> bool:
    return abs(discrepancy) <= epsilon_cents


def classify(
    discrepancy: int,
    user_discrepancies: list[UserDiscrepancy],
    epsilon_cents: int,
    urgent_cents: int,
) -> tuple[ReconciliationStatus, Severity]:
    """Status and severity of a run.

    A run with a clean global total can still hide offsetting per-user
    mismatches, so any user discrepancy also yields ``discrepancy_found``.
    """
    largest = max(
        [abs(discrepancy)] + [abs(u.difference) for u in user_discrepancies]
    )
    if is_within_epsilon(discrepancy, epsilon_cents) and not user_discrepancies:
        return ReconciliationStatus.RECONCILED, Severity.INFO
    if largest >= urgent_cents:
        return ReconciliationStatus.DISCREPANCY_FOUND, Severity.URGENT
    return ReconciliationStatus.DISCREPANCY_FOUND, Severity.WARNING
