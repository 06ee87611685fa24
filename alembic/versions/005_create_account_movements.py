"""005: create account_movements table

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE account_movements (
            id                  BIGSERIAL       PRIMARY KEY,
            statement_id        BIGINT          NOT NULL
                                REFERENCES account_statements (id) ON DELETE RESTRICT,
            statement_date      DATE            NOT NULL,
            dimension           VARCHAR(10)     NOT NULL,
            entity_id           VARCHAR(64)     NOT NULL,
            amount              BIGINT          NOT NULL,
            kind                VARCHAR(12)     NOT NULL,
            method              VARCHAR(12)     NOT NULL,
            note                TEXT,
            idempotency_key     VARCHAR(128),
            is_reversed         BOOLEAN         NOT NULL DEFAULT FALSE,
            reversed_at         TIMESTAMPTZ,
            reversed_by         VARCHAR(64),
            reversal_reason     TEXT,
            recorded_by         VARCHAR(64),
            recorded_by_name    VARCHAR(128),
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_movements_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_movements_kind CHECK (kind IN ('PAYMENT', 'COLLECTION')),
            CONSTRAINT ck_movements_method CHECK (method IN ('CASH', 'TRANSFER', 'CHECK', 'OTHER')),
            CONSTRAINT ck_movements_reversal CHECK (is_reversed = (reversed_at IS NOT NULL))
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_movements_idempotency_key
        ON account_movements (idempotency_key)
        WHERE idempotency_key IS NOT NULL;
    """)
    op.execute("""
        CREATE INDEX idx_movements_statement_active
        ON account_movements (statement_id)
        WHERE is_reversed = FALSE;
    """)
    op.execute("""
        CREATE INDEX idx_movements_entity_date
        ON account_movements (dimension, entity_id, statement_date);
    """)
    op.execute("""
        CREATE TRIGGER trg_account_movements_append_only
            BEFORE UPDATE OR DELETE ON account_movements
            FOR EACH ROW EXECUTE FUNCTION fn_movement_append_only();
    """)
    op.execute(
        "COMMENT ON TABLE account_movements IS "
        "'Cash payments/collections against a statement. Append-only, reversible, never deleted';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS account_movements CASCADE;")
