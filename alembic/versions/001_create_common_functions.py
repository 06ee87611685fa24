"""001: create common functions

Revision ID: 001
Revises: 
Create Date: 2026-10-17
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
    # Append-only guard for account_movements: no DELETE, and the only
    # permitted UPDATE is the one-way active -> reversed transition.
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_movement_append_only()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'account_movements is append-only';
            END IF;
            IF OLD.is_reversed OR NOT NEW.is_reversed
               OR NEW.amount <> OLD.amount OR NEW.kind <> OLD.kind
               OR NEW.statement_id <> OLD.statement_id THEN
                RAISE EXCEPTION 'only active -> reversed transitions are allowed';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS fn_movement_append_only();")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
