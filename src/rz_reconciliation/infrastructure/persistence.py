"""ReconciliationRepository — aggregate queries over accounts and ledger_transactions.

Never updates accounts or ledger rows. The only write is the INSERT into
reconciliation_reports.
"""

import json
from dataclasses import asdict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.rz_common.enums import Currency
from src.rz_common.errors import InternalError
from src.rz_reconciliation.domain.models import ReconciliationReport, UserDiscrepancy

_BALANCE_COLUMN = {
    Currency.COIN: "available_balance",
    Currency.FIAT: "fiat_balance",
}

_OBSERVED_SQL = {
    currency: text(f"""
        SELECT COUNT(*) AS total_users, COALESCE(SUM({column}), 0) AS total
        FROM accounts
    """)
    for currency, column in _BALANCE_COLUMN.items()
}

_LEDGER_TOTAL_SQL = text("""
    SELECT COALESCE(SUM(CASE WHEN direction = 'CREDIT' THEN amount ELSE -amount END), 0)
    FROM ledger_transactions
    WHERE currency = :currency
""")

_USER_DISCREPANCY_SQL = {
    currency: text(f"""
        WITH derived AS (
            SELECT user_id,
                   SUM(CASE WHEN direction = 'CREDIT' THEN amount ELSE -amount END) AS balance
            FROM ledger_transactions
            WHERE currency = :currency
            GROUP BY user_id
        )
        SELECT COALESCE(a.user_id, d.user_id) AS user_id,
               COALESCE(a.{column}, 0) AS observed,
               COALESCE(d.balance, 0) AS derived
        FROM accounts a
        FULL OUTER JOIN derived d ON d.user_id = a.user_id
        WHERE ABS(COALESCE(a.{column}, 0) - COALESCE(d.balance, 0)) > :epsilon
        ORDER BY ABS(COALESCE(a.{column}, 0) - COALESCE(d.balance, 0)) DESC,
                 COALESCE(a.user_id, d.user_id)
        LIMIT :limit
    """)
    for currency, column in _BALANCE_COLUMN.items()
}

_INSERT_REPORT_SQL = text("""
    INSERT INTO reconciliation_reports
        (currency, total_users, total_balance_observed, total_balance_from_ledger,
         discrepancy, is_reconciled, status, severity, user_discrepancies)
    VALUES
        (:currency, :total_users, :total_balance_observed, :total_balance_from_ledger,
         :discrepancy, :is_reconciled, :status, :severity, CAST(:user_discrepancies AS JSONB))
    RETURNING id, checked_at
""")

_LIST_REPORTS_SQL = text("""
    SELECT id, currency, total_users, total_balance_observed, total_balance_from_ledger,
           discrepancy, is_reconciled, status, severity, user_discrepancies, checked_at
    FROM reconciliation_reports
    ORDER BY checked_at DESC, id DESC
    LIMIT :limit
""")


def _row_to_report(row: object) -> ReconciliationReport:
    raw = row.user_discrepancies or []  # type: ignore[attr-defined]
    if isinstance(raw, str):
        raw = json.loads(raw)
    return ReconciliationReport(
        id=row.id,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        total_users=row.total_users,  # type: ignore[attr-defined]
        total_balance_observed=row.total_balance_observed,  # type: ignore[attr-defined]
        total_balance_from_ledger=row.total_balance_from_ledger,  # type: ignore[attr-defined]
        discrepancy=row.discrepancy,  # type: ignore[attr-defined]
        is_reconciled=row.is_reconciled,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        severity=row.severity,  # type: ignore[attr-defined]
        user_discrepancies=[UserDiscrepancy(**item) for item in raw],
        checked_at=row.checked_at,  # type: ignore[attr-defined]
    )


class ReconciliationRepository:
    async def begin_snapshot(self, db: AsyncSession) -> None:
        # Must run before the session starts its transaction
        await db.connection(execution_options={"isolation_level": "REPEATABLE READ"})

    async def observed_totals(self, db: AsyncSession, currency: str) -> tuple[int, int]:
        row = (await db.execute(_OBSERVED_SQL[Currency(currency)])).fetchone()
        if row is None:
            return 0, 0
        return int(row.total_users), int(row.total)

    async def ledger_total(self, db: AsyncSession, currency: str) -> int:
        result = await db.execute(_LEDGER_TOTAL_SQL, {"currency": currency})
        return int(result.scalar_one())

    async def user_discrepancies(
        self, db: AsyncSession, currency: str, epsilon_cents: int, limit: int
    ) -> list[UserDiscrepancy]:
        result = await db.execute(
            _USER_DISCREPANCY_SQL[Currency(currency)],
            {"currency": currency, "epsilon": epsilon_cents, "limit": limit},
        )
        return [
            UserDiscrepancy(
                user_id=row.user_id,
                observed_balance=int(row.observed),
                ledger_balance=int(row.derived),
                difference=int(row.observed) - int(row.derived),
            )
            for row in result.fetchall()
        ]

    async def insert_report(
        self, db: AsyncSession, report: ReconciliationReport
    ) -> ReconciliationReport:
        result = await db.execute(
            _INSERT_REPORT_SQL,
            {
                "currency": report.currency,
                "total_users": report.total_users,
                "total_balance_observed": report.total_balance_observed,
                "total_balance_from_ledger": report.total_balance_from_ledger,
                "discrepancy": report.discrepancy,
                "is_reconciled": report.is_reconciled,
                "status": report.status,
                "severity": report.severity,
                "user_discrepancies": json.dumps(
                    [asdict(u) for u in report.user_discrepancies]
                ),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Reconciliation report insert returned no rows")
        report.id = row.id
        report.checked_at = row.checked_at
        return report

    async def list_reports(self, db: AsyncSession, limit: int) -> list[ReconciliationReport]:
        result = await db.execute(_LIST_REPORTS_SQL, {"limit": limit})
        return [_row_to_report(row) for row in result.fetchall()]
