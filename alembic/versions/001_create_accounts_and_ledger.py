"""001: create accounts and ledger_transactions

Revision ID: 001
Revises: 
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE accounts (
            id                  UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id             VARCHAR(64) NOT NULL,
            available_balance   BIGINT      NOT NULL DEFAULT 0,
            fiat_balance        BIGINT      NOT NULL DEFAULT 0,
            version             BIGINT      NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_accounts_user_id          UNIQUE (user_id),
            CONSTRAINT ck_accounts_available_gte_0  CHECK (available_balance >= 0),
            CONSTRAINT ck_accounts_fiat_gte_0       CHECK (fiat_balance >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_accounts_updated_at
            BEFORE UPDATE ON accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE accounts IS "
        "'User balances: available_balance = COIN cents, fiat_balance = FIAT cents';"
    )

    op.execute("""
        CREATE TABLE ledger_transactions (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            direction       VARCHAR(6)      NOT NULL,
            currency        VARCHAR(4)      NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            entry_type      VARCHAR(30)     NOT NULL,
            description     VARCHAR(500),
            market_id       VARCHAR(64),
            reference_type  VARCHAR(30),
            reference_id    VARCHAR(64),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_direction CHECK (direction IN ('CREDIT', 'DEBIT')),
            CONSTRAINT ck_ledger_currency  CHECK (currency IN ('COIN', 'FIAT')),
            CONSTRAINT ck_ledger_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0),
            CONSTRAINT ck_ledger_entry_type CHECK (
                entry_type IN (
                    'DEPOSIT', 'WITHDRAW',
                    'POSITION_STAKE', 'MARKET_PAYOUT', 'CASHOUT',
                    'EXCHANGE_DEBIT', 'EXCHANGE_CREDIT', 'LIMIT_CANCEL_FEE',
                    'FAST_BET', 'FAST_PAYOUT', 'FAST_REFUND'
                )
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_ledger_user_id ON ledger_transactions (user_id, id DESC);"
    )
    op.execute(
        "CREATE INDEX idx_ledger_currency_user ON ledger_transactions (currency, user_id);"
    )
    op.execute("""
        CREATE INDEX idx_ledger_reference
        ON ledger_transactions (reference_type, reference_id)
        WHERE reference_id IS NOT NULL;
    """)
    op.execute(
        "COMMENT ON TABLE ledger_transactions IS "
        "'Append-only; every balance change has exactly one row here';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_transactions CASCADE;")
    op.execute("DROP TABLE IF EXISTS accounts CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
