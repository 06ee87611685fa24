"""002: create organization tables (banks, windows, sellers)

Owned by the organization service; mirrored here so the statement engine
can run standalone and resolve parent scopes.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE banks (
            id          VARCHAR(64)     PRIMARY KEY,
            name        VARCHAR(128)    NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE TABLE windows (
            id          VARCHAR(64)     PRIMARY KEY,
            bank_id     VARCHAR(64)     NOT NULL REFERENCES banks (id),
            name        VARCHAR(128)    NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE TABLE sellers (
            id          VARCHAR(64)     PRIMARY KEY,
            window_id   VARCHAR(64)     NOT NULL REFERENCES windows (id),
            name        VARCHAR(128)    NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_windows_bank ON windows (bank_id);")
    op.execute("CREATE INDEX idx_sellers_window ON sellers (window_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS sellers CASCADE;")
    op.execute("DROP TABLE IF EXISTS windows CASCADE;")
    op.execute("DROP TABLE IF EXISTS banks CASCADE;")
