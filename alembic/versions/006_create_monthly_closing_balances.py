"""006: create monthly_closing_balances table

Revision ID: 006
Revises: 005
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE monthly_closing_balances (
            id                  BIGSERIAL       PRIMARY KEY,
            closing_month       VARCHAR(7)      NOT NULL,
            dimension           VARCHAR(10)     NOT NULL,
            entity_id           VARCHAR(64)     NOT NULL,
            closing_balance     BIGINT          NOT NULL,
            total_sales         BIGINT          NOT NULL DEFAULT 0,
            total_payouts       BIGINT          NOT NULL DEFAULT 0,
            total_commission    BIGINT          NOT NULL DEFAULT 0,
            total_paid          BIGINT          NOT NULL DEFAULT 0,
            total_collected     BIGINT          NOT NULL DEFAULT 0,
            ticket_count        INTEGER         NOT NULL DEFAULT 0,
            closed_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_closing_dimension CHECK (dimension IN ('BANK', 'WINDOW', 'SELLER')),
            CONSTRAINT uq_closing_month_entity UNIQUE (closing_month, dimension, entity_id)
        );
    """)
    op.execute(
        "COMMENT ON TABLE monthly_closing_balances IS "
        "'Month-end remaining balance per entity, seeds the next month opening balance';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS monthly_closing_balances CASCADE;")
