"""MovementRepository — concrete implementation of MovementRepositoryProtocol.

account_movements is append-only: rows are inserted, and the single
permitted UPDATE flips is_reversed false -> true. The WHERE clause of that
UPDATE makes the transition one-way even under concurrent reversals.

Transaction ownership: The CALLER (application service) commits or rolls back.
"""

from datetime import date
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import Dimension, MovementKind
from src.pos_ledger.domain.models import Movement, MovementTotals, NewMovement
from src.pos_sales.domain.models import EntityFilter

_COLUMNS = """
    id, statement_id, statement_date, dimension, entity_id, amount, kind, method,
    note, idempotency_key, is_reversed, reversed_at, reversed_by, reversal_reason,
    recorded_by, recorded_by_name, created_at
"""

_M_COLUMNS = ", ".join("m." + c.strip() for c in _COLUMNS.split(","))

_GET_BY_ID_SQL = text(f"SELECT {_COLUMNS} FROM account_movements WHERE id = :id")

_GET_BY_IDEMPOTENCY_KEY_SQL = text(f"""
    SELECT {_COLUMNS} FROM account_movements WHERE idempotency_key = :idempotency_key
""")

_INSERT_SQL = text(f"""
    INSERT INTO account_movements
        (statement_id, statement_date, dimension, entity_id, amount, kind, method,
         note, idempotency_key, recorded_by, recorded_by_name)
    VALUES
        (:statement_id, :statement_date, :dimension, :entity_id, :amount, :kind, :method,
         :note, :idempotency_key, :recorded_by, :recorded_by_name)
    RETURNING {_COLUMNS}
""")

_MARK_REVERSED_SQL = text(f"""
    UPDATE account_movements
    SET is_reversed = TRUE,
        reversed_at = NOW(),
        reversed_by = :reversed_by,
        reversal_reason = :reason
    WHERE id = :id AND is_reversed = FALSE
    RETURNING {_COLUMNS}
""")

_TOTALS_FOR_STATEMENT_SQL = text("""
    SELECT COALESCE(SUM(amount) FILTER (WHERE kind = 'PAYMENT'), 0)    AS paid,
           COALESCE(SUM(amount) FILTER (WHERE kind = 'COLLECTION'), 0) AS collected,
           COUNT(*)                                                    AS active_count
    FROM account_movements
    WHERE statement_id = :statement_id AND is_reversed = FALSE
""")

# Parent scope resolved through the organization tables, as for statements
_SCOPE_JOIN = """
    LEFT JOIN sellers se ON m.dimension = 'SELLER' AND se.id = m.entity_id
    LEFT JOIN windows w ON w.id = CASE m.dimension
                                      WHEN 'WINDOW' THEN m.entity_id
                                      WHEN 'SELLER' THEN se.window_id
                                  END
"""

_SCOPE_WHERE = """
      AND (CAST(:bank_id AS VARCHAR) IS NULL
           OR (CASE WHEN m.dimension = 'BANK' THEN m.entity_id ELSE w.bank_id END) = :bank_id)
      AND (CAST(:window_id AS VARCHAR) IS NULL OR w.id = :window_id)
      AND (CAST(:seller_id AS VARCHAR) IS NULL OR se.id = :seller_id)
"""

_TOTALS_FOR_RANGE_SQL = text(f"""
    SELECT m.statement_date, m.entity_id,
           COALESCE(SUM(m.amount) FILTER (WHERE m.kind = 'PAYMENT'), 0)    AS paid,
           COALESCE(SUM(m.amount) FILTER (WHERE m.kind = 'COLLECTION'), 0) AS collected,
           COUNT(*)                                                        AS active_count
    FROM account_movements m
    {_SCOPE_JOIN}
    WHERE m.dimension = :dimension
      AND m.is_reversed = FALSE
      AND m.statement_date BETWEEN :start_day AND :end_day
      {_SCOPE_WHERE}
    GROUP BY m.statement_date, m.entity_id
""")

_LIST_FOR_DAY_SQL = text(f"""
    SELECT {_M_COLUMNS}
    FROM account_movements m
    {_SCOPE_JOIN}
    WHERE m.dimension = :dimension
      AND m.statement_date = :day
      {_SCOPE_WHERE}
    ORDER BY m.created_at DESC, m.id DESC
""")

_COUNT_FOR_STATEMENT_SQL = text("""
    SELECT COUNT(*) FROM account_movements WHERE statement_id = :statement_id
""")


def _row_to_movement(row: Any) -> Movement:
    return Movement(
        id=row.id,
        statement_id=row.statement_id,
        statement_date=row.statement_date,
        dimension=Dimension(row.dimension),
        entity_id=row.entity_id,
        amount=row.amount,
        kind=MovementKind(row.kind),
        method=row.method,
        note=row.note,
        idempotency_key=row.idempotency_key,
        is_reversed=row.is_reversed,
        reversed_at=row.reversed_at,
        reversed_by=row.reversed_by,
        reversal_reason=row.reversal_reason,
        recorded_by=row.recorded_by,
        recorded_by_name=row.recorded_by_name,
        created_at=row.created_at,
    )


def _scope_params(entity_filter: EntityFilter) -> dict[str, str | None]:
    return {
        "bank_id": entity_filter.bank_id,
        "window_id": entity_filter.window_id,
        "seller_id": entity_filter.seller_id,
    }


class MovementRepository:
    async def get_by_id(self, db: AsyncSession, movement_id: int) -> Movement | None:
        result = await db.execute(_GET_BY_ID_SQL, {"id": movement_id})
        row = result.fetchone()
        return _row_to_movement(row) if row is not None else None

    async def get_by_idempotency_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> Movement | None:
        result = await db.execute(
            _GET_BY_IDEMPOTENCY_KEY_SQL, {"idempotency_key": idempotency_key}
        )
        row = result.fetchone()
        return _row_to_movement(row) if row is not None else None

    async def insert(self, db: AsyncSession, new: NewMovement) -> Movement:
        result = await db.execute(
            _INSERT_SQL,
            {
                "statement_id": new.statement_id,
                "statement_date": new.statement_date,
                "dimension": new.dimension.value,
                "entity_id": new.entity_id,
                "amount": new.amount,
                "kind": new.kind.value,
                "method": new.method,
                "note": new.note,
                "idempotency_key": new.idempotency_key,
                "recorded_by": new.recorded_by,
                "recorded_by_name": new.recorded_by_name,
            },
        )
        return _row_to_movement(result.fetchone())

    async def mark_reversed(
        self,
        db: AsyncSession,
        movement_id: int,
        reversed_by: str,
        reason: str | None,
    ) -> Movement | None:
        result = await db.execute(
            _MARK_REVERSED_SQL,
            {"id": movement_id, "reversed_by": reversed_by, "reason": reason},
        )
        row = result.fetchone()
        return _row_to_movement(row) if row is not None else None

    async def totals_for_statement(
        self, db: AsyncSession, statement_id: int
    ) -> MovementTotals:
        result = await db.execute(_TOTALS_FOR_STATEMENT_SQL, {"statement_id": statement_id})
        row = result.fetchone()
        return MovementTotals(
            paid=int(row.paid), collected=int(row.collected), active_count=int(row.active_count)
        )

    async def totals_for_range(
        self,
        db: AsyncSession,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> dict[tuple[date, str], MovementTotals]:
        result = await db.execute(
            _TOTALS_FOR_RANGE_SQL,
            {
                "dimension": dimension.value,
                "start_day": start_day,
                "end_day": end_day,
                **_scope_params(entity_filter),
            },
        )
        return {
            (r.statement_date, r.entity_id): MovementTotals(
                paid=int(r.paid), collected=int(r.collected), active_count=int(r.active_count)
            )
            for r in result.fetchall()
        }

    async def list_for_day(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[Movement]:
        result = await db.execute(
            _LIST_FOR_DAY_SQL,
            {"dimension": dimension.value, "day": day, **_scope_params(entity_filter)},
        )
        return [_row_to_movement(r) for r in result.fetchall()]

    async def count_for_statement(self, db: AsyncSession, statement_id: int) -> int:
        result = await db.execute(_COUNT_FOR_STATEMENT_SQL, {"statement_id": statement_id})
        return int(result.scalar_one())
