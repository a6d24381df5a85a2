"""003: create exchange_orders and rates

Revision ID: 003
Revises: 002
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE exchange_orders (
            id              VARCHAR(64)     PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            order_type      VARCHAR(10)     NOT NULL,
            side            VARCHAR(10)     NOT NULL,
            amount_coin     BIGINT          NOT NULL,
            amount_fiat     BIGINT          NOT NULL DEFAULT 0,
            status          VARCHAR(10)     NOT NULL,
            limit_price     NUMERIC(24, 8),
            executed_price  NUMERIC(24, 8),
            fee_coin        BIGINT          NOT NULL DEFAULT 0,
            fee_fiat        BIGINT          NOT NULL DEFAULT 0,
            failure_reason  VARCHAR(200),
            expires_at      TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            filled_at       TIMESTAMPTZ,
            cancelled_at    TIMESTAMPTZ,
            CONSTRAINT ck_exchange_orders_type CHECK (order_type IN ('market', 'limit')),
            CONSTRAINT ck_exchange_orders_side CHECK (side IN ('buy_coin', 'sell_coin')),
            CONSTRAINT ck_exchange_orders_status CHECK (
                status IN ('pending', 'filled', 'cancelled', 'expired', 'failed')
            ),
            CONSTRAINT ck_exchange_orders_amount_gt_0 CHECK (amount_coin > 0),
            CONSTRAINT ck_exchange_orders_limit_price CHECK (
                order_type = 'market' OR limit_price > 0
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_exchange_orders_updated_at
            BEFORE UPDATE ON exchange_orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("""
        CREATE INDEX idx_exchange_orders_pending
        ON exchange_orders (created_at, id)
        WHERE order_type = 'limit' AND status = 'pending';
    """)
    op.execute(
        "CREATE INDEX idx_exchange_orders_user ON exchange_orders (user_id, created_at DESC);"
    )

    op.execute("""
        CREATE TABLE rates (
            symbol          VARCHAR(20)     PRIMARY KEY,
            price           NUMERIC(24, 8)  NOT NULL,
            observed_at     TIMESTAMPTZ     NOT NULL,
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_rates_price_gt_0 CHECK (price > 0)
        );
    """)
    op.execute(
        "COMMENT ON TABLE rates IS "
        "'Latest reference price per symbol; COINFIAT = FIAT per COIN';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS rates CASCADE;")
    op.execute("DROP TABLE IF EXISTS exchange_orders CASCADE;")
