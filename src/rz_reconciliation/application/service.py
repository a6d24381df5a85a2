"""ReconciliationValidator — detection-only double-entry check.

For each currency, compares the live sum of account balances with the sum
of credits minus debits over the append-only ledger. Every run appends a
report; nothing else is written and nothing is corrected here.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.rz_common.enums import Currency, Severity
from src.rz_common.events import RECONCILIATION_COMPLETED, EventPublisher, publish_event
from src.rz_reconciliation.domain.models import ReconciliationReport
from src.rz_reconciliation.domain.repository import ReconciliationRepositoryProtocol
from src.rz_reconciliation.domain.rules import classify, is_within_epsilon
from src.rz_reconciliation.infrastructure.persistence import ReconciliationRepository

logger = logging.getLogger(__name__)

USER_DISCREPANCY_LIMIT = 100


class ReconciliationValidator:
    def __init__(
        self,
        repo: ReconciliationRepositoryProtocol | None = None,
        epsilon_cents: int | None = None,
        urgent_cents: int | None = None,
        publisher: EventPublisher = publish_event,
    ) -> None:
        self._repo: ReconciliationRepositoryProtocol = repo or ReconciliationRepository()
        self._epsilon = (
            settings.RECONCILIATION_EPSILON_CENTS if epsilon_cents is None else epsilon_cents
        )
        self._urgent = urgent_cents or settings.RECONCILIATION_URGENT_CENTS
        self._publish = publisher

    async def _check(self, db: AsyncSession, currency: str) -> ReconciliationReport:
        total_users, observed = await self._repo.observed_totals(db, currency)
        derived = await self._repo.ledger_total(db, currency)
        discrepancy = observed - derived
        users = await self._repo.user_discrepancies(
            db, currency, self._epsilon, USER_DISCREPANCY_LIMIT
        )
        status, severity = classify(discrepancy, users, self._epsilon, self._urgent)
        return ReconciliationReport(
            currency=currency,
            total_users=total_users,
            total_balance_observed=observed,
            total_balance_from_ledger=derived,
            discrepancy=discrepancy,
            is_reconciled=is_within_epsilon(discrepancy, self._epsilon),
            status=status.value,
            severity=severity.value,
            user_discrepancies=users,
        )

    async def validate(self, db: AsyncSession) -> list[ReconciliationReport]:
        """One persisted report per currency, COIN first."""
        try:
            # Every read below sees one snapshot of balances and ledger
            await self._repo.begin_snapshot(db)
            reports = [
                await self._repo.insert_report(db, await self._check(db, currency))
                for currency in (Currency.COIN.value, Currency.FIAT.value)
            ]
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        for r in reports:
            if r.severity == Severity.INFO:
                logger.info(
                    "Reconciled %s: %d users, total %d", r.currency, r.total_users,
                    r.total_balance_observed,
                )
                continue
            log = logger.error if r.severity == Severity.URGENT else logger.warning
            log(
                "Reconciliation %s %s: observed=%d ledger=%d discrepancy=%d users_off=%d",
                r.currency, r.severity, r.total_balance_observed,
                r.total_balance_from_ledger, r.discrepancy, len(r.user_discrepancies),
            )

        await self._publish(
            RECONCILIATION_COMPLETED,
            {
                "is_reconciled": all(r.is_reconciled for r in reports),
                "statuses": {r.currency: r.status for r in reports},
            },
        )
        return reports

    async def list_reports(self, db: AsyncSession, limit: int = 20) -> list[ReconciliationReport]:
        return await self._repo.list_reports(db, limit)
