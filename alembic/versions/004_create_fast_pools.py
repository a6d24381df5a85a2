"""004: create fast_pools, fast_pool_bets and fast_pool_results

Revision ID: 004
Revises: 003
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE fast_pools (
            id                      VARCHAR(64)     PRIMARY KEY,
            round_number            BIGINT          NOT NULL,
            category                VARCHAR(20)     NOT NULL,
            asset_symbol            VARCHAR(20)     NOT NULL,
            asset_name              VARCHAR(100)    NOT NULL,
            question                VARCHAR(500)    NOT NULL,
            round_start             TIMESTAMPTZ     NOT NULL,
            round_end               TIMESTAMPTZ     NOT NULL,
            opening_price           NUMERIC(24, 8)  NOT NULL,
            closing_price           NUMERIC(24, 8),
            result                  VARCHAR(10),
            price_change_percent    NUMERIC(12, 4),
            status                  VARCHAR(12)     NOT NULL DEFAULT 'active',
            paused                  BOOLEAN         NOT NULL DEFAULT FALSE,
            base_odds_bps           INTEGER         NOT NULL,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_fast_pools_status CHECK (
                status IN ('active', 'processing', 'completed')
            ),
            CONSTRAINT ck_fast_pools_result CHECK (
                result IS NULL OR result IN ('subiu', 'desceu', 'manteve')
            ),
            CONSTRAINT ck_fast_pools_window CHECK (
                round_end = round_start + INTERVAL '60 seconds'
            ),
            CONSTRAINT uq_fast_pools_asset_round UNIQUE (asset_symbol, round_start),
            CONSTRAINT ck_fast_pools_closing_not_active CHECK (
                status <> 'active' OR closing_price IS NULL
            ),
            CONSTRAINT ck_fast_pools_odds_gte_1 CHECK (base_odds_bps >= 10000)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_fast_pools_updated_at
            BEFORE UPDATE ON fast_pools
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "CREATE INDEX idx_fast_pools_category_open ON fast_pools (category, status, round_end);"
    )
    op.execute("CREATE INDEX idx_fast_pools_asset ON fast_pools (asset_symbol, status);")

    op.execute("""
        CREATE TABLE fast_pool_bets (
            id              VARCHAR(64)     PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            pool_id         VARCHAR(64)     NOT NULL REFERENCES fast_pools (id),
            side            VARCHAR(4)      NOT NULL,
            stake           BIGINT          NOT NULL,
            odds_bps        INTEGER         NOT NULL,
            processed       BOOLEAN         NOT NULL DEFAULT FALSE,
            payout_amount   BIGINT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_fast_bets_side CHECK (side IN ('up', 'down')),
            CONSTRAINT ck_fast_bets_stake_gt_0 CHECK (stake > 0),
            CONSTRAINT ck_fast_bets_payout CHECK (
                (processed = FALSE AND payout_amount IS NULL)
                OR (processed = TRUE AND payout_amount >= 0)
            )
        );
    """)
    op.execute("CREATE INDEX idx_fast_bets_pool ON fast_pool_bets (pool_id, processed);")
    op.execute("CREATE INDEX idx_fast_bets_user ON fast_pool_bets (user_id, created_at DESC);")

    op.execute("""
        CREATE TABLE fast_pool_results (
            id                      BIGSERIAL       PRIMARY KEY,
            pool_id                 VARCHAR(64)     NOT NULL REFERENCES fast_pools (id),
            asset_symbol            VARCHAR(20)     NOT NULL,
            opening_price           NUMERIC(24, 8)  NOT NULL,
            closing_price           NUMERIC(24, 8)  NOT NULL,
            price_change_percent    NUMERIC(12, 4)  NOT NULL,
            result                  VARCHAR(10)     NOT NULL,
            total_up                BIGINT          NOT NULL DEFAULT 0,
            total_down              BIGINT          NOT NULL DEFAULT 0,
            winners_count           INTEGER         NOT NULL DEFAULT 0,
            total_payout            BIGINT          NOT NULL DEFAULT 0,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_fast_pool_results_pool UNIQUE (pool_id)
        );
    """)
    op.execute(
        "CREATE INDEX idx_fast_results_asset ON fast_pool_results (asset_symbol, created_at DESC);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS fast_pool_results CASCADE;")
    op.execute("DROP TABLE IF EXISTS fast_pool_bets CASCADE;")
    op.execute("DROP TABLE IF EXISTS fast_pools CASCADE;")
