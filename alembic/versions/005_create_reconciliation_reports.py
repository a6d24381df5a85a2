"""005: create reconciliation_reports

Revision ID: 005
Revises: 004
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE reconciliation_reports (
            id                          BIGSERIAL       PRIMARY KEY,
            currency                    VARCHAR(4)      NOT NULL,
            total_users                 INTEGER         NOT NULL,
            total_balance_observed      BIGINT          NOT NULL,
            total_balance_from_ledger   BIGINT          NOT NULL,
            discrepancy                 BIGINT          NOT NULL,
            is_reconciled               BOOLEAN         NOT NULL,
            status                      VARCHAR(20)     NOT NULL,
            severity                    VARCHAR(10)     NOT NULL,
            user_discrepancies          JSONB           NOT NULL DEFAULT '[]'::jsonb,
            checked_at                  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_recon_currency CHECK (currency IN ('COIN', 'FIAT')),
            CONSTRAINT ck_recon_status CHECK (status IN ('reconciled', 'discrepancy_found')),
            CONSTRAINT ck_recon_severity CHECK (severity IN ('info', 'warning', 'urgent'))
        );
    """)
    op.execute(
        "CREATE INDEX idx_recon_checked_at ON reconciliation_reports (checked_at DESC);"
    )
    op.execute(
        "COMMENT ON TABLE reconciliation_reports IS 'Append-only audit trail of balance checks';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS reconciliation_reports CASCADE;")
