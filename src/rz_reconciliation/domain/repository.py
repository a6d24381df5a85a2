"""Repository Protocol — read-only over balances and ledger, append-only for reports."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_reconciliation.domain.models import ReconciliationReport, UserDiscrepancy


class ReconciliationRepositoryProtocol(Protocol):
    async def begin_snapshot(self, db: AsyncSession) -> None:
        """Pin every following read of this transaction to one snapshot."""
        ...

    async def observed_totals(self, db: AsyncSession, currency: str) -> tuple[int, int]:
        """(number of accounts, sum of balances) for the currency."""
        ...

    async def ledger_total(self, db: AsyncSession, currency: str) -> int:
        """Sum of credits minus debits over every ledger row of the currency."""
        ...

    async def user_discrepancies(
        self, db: AsyncSession, currency: str, epsilon_cents: int, limit: int
    ) -> list[UserDiscrepancy]: ...

    async def insert_report(
        self, db: AsyncSession, report: ReconciliationReport
    ) -> ReconciliationReport: ...

    async def list_reports(self, db: AsyncSession, limit: int) -> list[ReconciliationReport]: ...
