"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.

Pre-condition: PostgreSQL + Redis running, then `alembic upgrade head`
"""

import uuid
from dataclasses import dataclass
from datetime import date

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.main import app
from src.pos_common.database import async_session_factory
from src.pos_common.enums import Role
from src.pos_gateway.auth.jwt_handler import create_access_token

SALES_DAY = date(2025, 3, 10)


@dataclass(frozen=True)
class SeededOrg:
    bank_id: str
    window_id: str
    seller_id: str


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def seed_org() -> SeededOrg:
    """Insert a new bank/window/seller with two tickets on SALES_DAY.

    Ids are unique per call so repeated runs never see each other's statements.
    Ticket 1: 10000 sold, 4000 paid out, 1000 seller commission.
    Ticket 2: 5000 sold, no payout, 500 seller commission.
    """
    suffix = uuid.uuid4().hex[:8]
    org = SeededOrg(f"B-{suffix}", f"W-{suffix}", f"S-{suffix}")
    draw_id = f"D-{suffix}"
    async with async_session_factory() as db:
        await db.execute(
            text("INSERT INTO banks (id, name) VALUES (:id, 'Banca Prueba')"),
            {"id": org.bank_id},
        )
        await db.execute(
            text("INSERT INTO windows (id, bank_id, name) VALUES (:id, :bank_id, 'Ventanilla')"),
            {"id": org.window_id, "bank_id": org.bank_id},
        )
        await db.execute(
            text("INSERT INTO sellers (id, window_id, name) VALUES (:id, :window_id, 'Vendedor')"),
            {"id": org.seller_id, "window_id": org.window_id},
        )
        await db.execute(
            text("""
                INSERT INTO draws (id, name, lottery_name, scheduled_at)
                VALUES (:id, 'Mediodía', 'Nacional', '2025-03-10 18:00:00+00')
            """),
            {"id": draw_id},
        )
        for ticket_id, amount, payout, commission in (
            (f"T1-{suffix}", 10000, 4000, 1000),
            (f"T2-{suffix}", 5000, 0, 500),
        ):
            await db.execute(
                text("""
                    INSERT INTO tickets (id, bank_id, window_id, seller_id, draw_id,
                                         total_amount, total_payout, status,
                                         business_date, created_at)
                    VALUES (:id, :bank_id, :window_id, :seller_id, :draw_id,
                            :amount, :payout, 'EVALUATED',
                            :day, '2025-03-10 15:00:00+00')
                """),
                {
                    "id": ticket_id, "bank_id": org.bank_id, "window_id": org.window_id,
                    "seller_id": org.seller_id, "draw_id": draw_id,
                    "amount": amount, "payout": payout, "day": SALES_DAY,
                },
            )
            await db.execute(
                text("""
                    INSERT INTO plays (ticket_id, amount, is_winner, payout,
                                       commission_amount, commission_beneficiary)
                    VALUES (:ticket_id, :amount, :is_winner, :payout, :commission, 'SELLER')
                """),
                {
                    "ticket_id": ticket_id, "amount": amount, "is_winner": payout > 0,
                    "payout": payout, "commission": commission,
                },
            )
        await db.commit()
    return org


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def seeded_org() -> SeededOrg:
    """Org shared by the flow tests of one session."""
    return await seed_org()


@pytest_asyncio.fixture(loop_scope="session")
async def fresh_org() -> SeededOrg:
    """Org of its own for tests that must start from an untouched day."""
    return await seed_org()


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def admin_headers() -> dict[str, str]:
    token = create_access_token("admin-it", Role.ADMIN, name="Integración")
    return {"Authorization": f"Bearer {token}"}
