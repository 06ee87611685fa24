"""004: create account_statements table

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE account_statements (
            id                  BIGSERIAL       PRIMARY KEY,
            statement_date      DATE            NOT NULL,
            month               VARCHAR(7)      NOT NULL,
            dimension           VARCHAR(10)     NOT NULL,
            bank_id             VARCHAR(64),
            window_id           VARCHAR(64),
            seller_id           VARCHAR(64),
            entity_id           VARCHAR(64)     GENERATED ALWAYS AS
                                                (COALESCE(seller_id, window_id, bank_id)) STORED,
            total_sales         BIGINT          NOT NULL DEFAULT 0,
            total_payouts       BIGINT          NOT NULL DEFAULT 0,
            seller_commission   BIGINT          NOT NULL DEFAULT 0,
            window_commission   BIGINT          NOT NULL DEFAULT 0,
            balance             BIGINT          NOT NULL DEFAULT 0,
            total_paid          BIGINT          NOT NULL DEFAULT 0,
            total_collected     BIGINT          NOT NULL DEFAULT 0,
            remaining_balance   BIGINT          NOT NULL DEFAULT 0,
            ticket_count        INTEGER         NOT NULL DEFAULT 0,
            is_settled          BOOLEAN         NOT NULL DEFAULT FALSE,
            can_edit            BOOLEAN         NOT NULL DEFAULT TRUE,
            commission_source   VARCHAR(20)     NOT NULL DEFAULT 'SNAPSHOT',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_statements_dimension CHECK (dimension IN ('BANK', 'WINDOW', 'SELLER')),
            CONSTRAINT ck_statements_one_entity CHECK (
                (dimension = 'BANK'   AND bank_id IS NOT NULL AND window_id IS NULL AND seller_id IS NULL) OR
                (dimension = 'WINDOW' AND window_id IS NOT NULL AND bank_id IS NULL AND seller_id IS NULL) OR
                (dimension = 'SELLER' AND seller_id IS NOT NULL AND bank_id IS NULL AND window_id IS NULL)
            ),
            CONSTRAINT ck_statements_balance CHECK (
                remaining_balance = balance - total_collected + total_paid
            ),
            CONSTRAINT ck_statements_settled_has_tickets CHECK (NOT is_settled OR ticket_count > 0),
            CONSTRAINT ck_statements_can_edit CHECK (can_edit = NOT is_settled),
            CONSTRAINT ck_statements_commission_source CHECK (
                commission_source IN ('SNAPSHOT', 'DERIVED_FALLBACK')
            ),
            CONSTRAINT uq_statements_day_entity UNIQUE (statement_date, dimension, entity_id)
        );
    """)
    op.execute("""
        CREATE INDEX idx_statements_dimension_date
        ON account_statements (dimension, statement_date);
    """)
    op.execute("CREATE INDEX idx_statements_month ON account_statements (month, dimension);")
    op.execute("""
        CREATE TRIGGER trg_account_statements_updated_at
            BEFORE UPDATE ON account_statements
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE account_statements IS "
        "'Per-day per-entity statement totals, derived from sales + movements. Amounts in cents';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS account_statements CASCADE;")
