"""SqlSalesSource — concrete implementation of SalesSourceProtocol.

Reads tickets, plays, draws and draw exclusions owned by the ticketing
subsystem. Each call opens its own READ ONLY session (see
``read_only_session``) so the aggregator can run independent reads
concurrently without sharing a connection.

A ticket's business day is its stored ``business_date`` when present,
otherwise the calendar day of ``created_at`` in the business time zone.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pos_common.database import read_only_session
from src.pos_common.enums import COUNTED_SALE_STATUSES, Dimension
from src.pos_sales.domain.models import DrawInfo, EntityFilter, PlayRecord, SaleRecord

SessionProvider = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_FIND_SALES_SQL = text("""
    SELECT t.id, t.bank_id, t.window_id, t.seller_id, t.draw_id,
           t.total_amount, t.total_payout, t.status,
           COALESCE(t.business_date, DATE(t.created_at AT TIME ZONE :tz)) AS business_day,
           t.created_at
    FROM tickets t
    WHERE t.deleted_at IS NULL
      AND t.status IN :statuses
      AND COALESCE(t.business_date, DATE(t.created_at AT TIME ZONE :tz))
          BETWEEN :start_day AND :end_day
      AND (CAST(:bank_id AS VARCHAR) IS NULL OR t.bank_id = :bank_id)
      AND (CAST(:window_id AS VARCHAR) IS NULL OR t.window_id = :window_id)
      AND (CAST(:seller_id AS VARCHAR) IS NULL OR t.seller_id = :seller_id)
    ORDER BY business_day, t.created_at, t.id
    LIMIT :limit
""").bindparams(bindparam("statuses", expanding=True))

_FIND_PLAYS_SQL = text("""
    SELECT ticket_id, amount, is_winner, payout,
           commission_amount, commission_beneficiary, window_commission_amount
    FROM plays
    WHERE ticket_id IN :sale_ids
    ORDER BY ticket_id, id
""").bindparams(bindparam("sale_ids", expanding=True))

_FIND_EXCLUSIONS_SQL = text("""
    SELECT draw_id, window_id, seller_id
    FROM draw_exclusions
    WHERE draw_id IN :draw_ids
""").bindparams(bindparam("draw_ids", expanding=True))

_FIND_DRAWS_SQL = text("""
    SELECT id, name, lottery_name, scheduled_at
    FROM draws
    WHERE id IN :draw_ids
""").bindparams(bindparam("draw_ids", expanding=True))

_FIND_SCOPE_SQL = {
    Dimension.BANK: text("""
        SELECT id AS bank_id, NULL AS window_id, NULL AS seller_id
        FROM banks WHERE id = :entity_id
    """),
    Dimension.WINDOW: text("""
        SELECT bank_id, id AS window_id, NULL AS seller_id
        FROM windows WHERE id = :entity_id
    """),
    Dimension.SELLER: text("""
        SELECT w.bank_id, s.window_id, s.id AS seller_id
        FROM sellers s
        JOIN windows w ON w.id = s.window_id
        WHERE s.id = :entity_id
    """),
}

_ENTITY_TABLES = {
    Dimension.BANK: "banks",
    Dimension.WINDOW: "windows",
    Dimension.SELLER: "sellers",
}


def _row_to_sale(row: Any) -> SaleRecord:
    return SaleRecord(
        id=row.id,
        bank_id=row.bank_id,
        window_id=row.window_id,
        seller_id=row.seller_id,
        draw_id=row.draw_id,
        total_amount=row.total_amount,
        total_payout=row.total_payout,
        status=row.status,
        business_day=row.business_day,
        created_at=row.created_at,
    )


def _row_to_play(row: Any) -> PlayRecord:
    return PlayRecord(
        sale_id=row.ticket_id,
        amount=row.amount,
        is_winner=row.is_winner,
        payout=row.payout,
        commission_amount=row.commission_amount,
        commission_beneficiary=row.commission_beneficiary,
        window_commission_amount=row.window_commission_amount,
    )


class SqlSalesSource:
    def __init__(self, session_provider: SessionProvider | None = None) -> None:
        self._session = session_provider or read_only_session

    async def find_sales(
        self, start_day: date, end_day: date, entity_filter: EntityFilter, limit: int
    ) -> list[SaleRecord]:
        async with self._session() as db:
            result = await db.execute(
                _FIND_SALES_SQL,
                {
                    "tz": settings.BUSINESS_TIMEZONE,
                    "statuses": sorted(COUNTED_SALE_STATUSES),
                    "start_day": start_day,
                    "end_day": end_day,
                    "bank_id": entity_filter.bank_id,
                    "window_id": entity_filter.window_id,
                    "seller_id": entity_filter.seller_id,
                    "limit": limit,
                },
            )
            return [_row_to_sale(r) for r in result.fetchall()]

    async def find_plays(self, sale_ids: list[str]) -> list[PlayRecord]:
        if not sale_ids:
            return []
        async with self._session() as db:
            result = await db.execute(_FIND_PLAYS_SQL, {"sale_ids": sale_ids})
            return [_row_to_play(r) for r in result.fetchall()]

    async def find_exclusions(
        self, draw_ids: list[str]
    ) -> set[tuple[str, str, str | None]]:
        if not draw_ids:
            return set()
        async with self._session() as db:
            result = await db.execute(_FIND_EXCLUSIONS_SQL, {"draw_ids": draw_ids})
            return {(r.draw_id, r.window_id, r.seller_id) for r in result.fetchall()}

    async def find_draws(self, draw_ids: list[str]) -> dict[str, DrawInfo]:
        if not draw_ids:
            return {}
        async with self._session() as db:
            result = await db.execute(_FIND_DRAWS_SQL, {"draw_ids": draw_ids})
            return {
                r.id: DrawInfo(
                    id=r.id,
                    name=r.name,
                    lottery_name=r.lottery_name,
                    scheduled_at=r.scheduled_at,
                )
                for r in result.fetchall()
            }

    async def find_entity_names(
        self, dimension: Dimension, entity_ids: list[str]
    ) -> dict[str, str]:
        if not entity_ids:
            return {}
        # Table name comes from a closed mapping, never from input
        stmt = text(
            f"SELECT id, name FROM {_ENTITY_TABLES[dimension]} WHERE id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        async with self._session() as db:
            result = await db.execute(stmt, {"ids": entity_ids})
            return {r.id: r.name for r in result.fetchall()}

    async def find_entity_scope(
        self, dimension: Dimension, entity_id: str
    ) -> EntityFilter | None:
        async with self._session() as db:
            result = await db.execute(_FIND_SCOPE_SQL[dimension], {"entity_id": entity_id})
            row = result.fetchone()
        if row is None:
            return None
        return EntityFilter(bank_id=row.bank_id, window_id=row.window_id, seller_id=row.seller_id)
