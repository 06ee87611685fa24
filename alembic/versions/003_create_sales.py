"""003: create sales tables (draws, tickets, plays, draw_exclusions)

Owned by the ticketing subsystem and read-only for the statement engine.
Commission and payout columns are frozen snapshots. All amounts in cents.

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE draws (
            id              VARCHAR(64)     PRIMARY KEY,
            name            VARCHAR(128)    NOT NULL,
            lottery_name    VARCHAR(128)    NOT NULL,
            scheduled_at    TIMESTAMPTZ     NOT NULL
        );
    """)
    op.execute("""
        CREATE TABLE tickets (
            id              VARCHAR(64)     PRIMARY KEY,
            bank_id         VARCHAR(64)     NOT NULL REFERENCES banks (id),
            window_id       VARCHAR(64)     NOT NULL REFERENCES windows (id),
            seller_id       VARCHAR(64)     NOT NULL REFERENCES sellers (id),
            draw_id         VARCHAR(64)     NOT NULL REFERENCES draws (id),
            total_amount    BIGINT          NOT NULL,
            total_payout    BIGINT          NOT NULL DEFAULT 0,
            status          VARCHAR(12)     NOT NULL,
            business_date   DATE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            deleted_at      TIMESTAMPTZ,
            CONSTRAINT ck_tickets_status CHECK (
                status IN ('ACTIVE', 'CANCELLED', 'EVALUATED', 'PAID')
            ),
            CONSTRAINT ck_tickets_amount_gte_0 CHECK (total_amount >= 0),
            CONSTRAINT ck_tickets_payout_gte_0 CHECK (total_payout >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_tickets_business_date ON tickets (business_date);")
    op.execute("CREATE INDEX idx_tickets_created_at ON tickets (created_at);")
    op.execute("CREATE INDEX idx_tickets_window ON tickets (window_id, business_date);")
    op.execute("CREATE INDEX idx_tickets_seller ON tickets (seller_id, business_date);")
    op.execute("""
        CREATE TABLE plays (
            id                          BIGSERIAL       PRIMARY KEY,
            ticket_id                   VARCHAR(64)     NOT NULL REFERENCES tickets (id),
            amount                      BIGINT          NOT NULL,
            is_winner                   BOOLEAN         NOT NULL DEFAULT FALSE,
            payout                      BIGINT          NOT NULL DEFAULT 0,
            commission_amount           BIGINT          NOT NULL DEFAULT 0,
            commission_beneficiary      VARCHAR(10)     NOT NULL,
            window_commission_amount    BIGINT,
            CONSTRAINT ck_plays_beneficiary CHECK (
                commission_beneficiary IN ('SELLER', 'WINDOW', 'BANK')
            )
        );
    """)
    op.execute("CREATE INDEX idx_plays_ticket ON plays (ticket_id);")
    op.execute("""
        CREATE TABLE draw_exclusions (
            id          BIGSERIAL       PRIMARY KEY,
            draw_id     VARCHAR(64)     NOT NULL REFERENCES draws (id),
            window_id   VARCHAR(64)     NOT NULL REFERENCES windows (id),
            seller_id   VARCHAR(64)     REFERENCES sellers (id),
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("CREATE INDEX idx_draw_exclusions_draw ON draw_exclusions (draw_id);")
    op.execute(
        "COMMENT ON COLUMN draw_exclusions.seller_id IS "
        "'NULL excludes every seller of the window from the draw';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS draw_exclusions CASCADE;")
    op.execute("DROP TABLE IF EXISTS plays CASCADE;")
    op.execute("DROP TABLE IF EXISTS tickets CASCADE;")
    op.execute("DROP TABLE IF EXISTS draws CASCADE;")
