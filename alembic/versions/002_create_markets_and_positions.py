"""002: create markets and positions

Revision ID: 002
Revises: 001
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id              VARCHAR(64)     PRIMARY KEY,
            title           VARCHAR(500)    NOT NULL,
            options         TEXT[]          NOT NULL DEFAULT ARRAY['sim', 'nao'],
            status          VARCHAR(10)     NOT NULL DEFAULT 'ACTIVE',
            closes_at       TIMESTAMPTZ,
            winning_option  VARCHAR(100),
            settled_at      TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_markets_status CHECK (status IN ('ACTIVE', 'CLOSED', 'SETTLED')),
            CONSTRAINT ck_markets_options CHECK (cardinality(options) >= 2)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_markets_updated_at
            BEFORE UPDATE ON markets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_markets_status_closes ON markets (status, closes_at);")

    op.execute("""
        CREATE TABLE positions (
            id                  VARCHAR(64)     PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            market_id           VARCHAR(64)     NOT NULL REFERENCES markets (id),
            option_chosen       VARCHAR(100)    NOT NULL,
            stake_amount        BIGINT          NOT NULL,
            entry_multiple_bps  INTEGER         NOT NULL,
            status              VARCHAR(12)     NOT NULL DEFAULT 'active',
            payout_amount       BIGINT          NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            settled_at          TIMESTAMPTZ,
            CONSTRAINT ck_positions_stake_gt_0 CHECK (stake_amount > 0),
            CONSTRAINT ck_positions_multiple_gte_1 CHECK (entry_multiple_bps >= 10000),
            CONSTRAINT ck_positions_payout_gte_0 CHECK (payout_amount >= 0),
            CONSTRAINT ck_positions_status CHECK (
                status IN ('active', 'won', 'lost', 'cashed_out', 'cancelled')
            )
        );
    """)
    op.execute("CREATE INDEX idx_positions_market_status ON positions (market_id, status);")
    op.execute("CREATE INDEX idx_positions_user ON positions (user_id, created_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS positions CASCADE;")
    op.execute("DROP TABLE IF EXISTS markets CASCADE;")
