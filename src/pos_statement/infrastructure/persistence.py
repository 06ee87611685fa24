"""StatementRepository — concrete implementation of StatementRepositoryProtocol.

Rows are created with INSERT ... ON CONFLICT DO UPDATE ... RETURNING so
concurrent first-touches of the same (day, dimension, entity) converge on
one row. Every totals write happens on a row locked with SELECT ... FOR
UPDATE by the same transaction.

Transaction ownership: The CALLER (application service) commits or rolls back.
"""

from datetime import date
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import CommissionSource, Dimension
from src.pos_common.errors import StatementNotFoundError
from src.pos_sales.domain.models import EntityFilter
from src.pos_statement.domain.models import StatementAggregate, StatementKey

_COLUMNS = """
    id, statement_date, dimension, bank_id, window_id, seller_id,
    total_sales, total_payouts, seller_commission, window_commission,
    balance, total_paid, total_collected, remaining_balance, ticket_count,
    is_settled, can_edit, commission_source, created_at, updated_at
"""

_S_COLUMNS = ", ".join("s." + c.strip() for c in _COLUMNS.split(","))

_GET_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM account_statements
    WHERE statement_date = :statement_date
      AND dimension = :dimension
      AND entity_id = :entity_id
""")

_LOCK_SQL = text(f"SELECT {_COLUMNS} FROM account_statements WHERE id = :id FOR UPDATE")

_ENSURE_SQL = text(f"""
    INSERT INTO account_statements
        (statement_date, month, dimension, bank_id, window_id, seller_id)
    VALUES
        (:statement_date, :month, :dimension, :bank_id, :window_id, :seller_id)
    ON CONFLICT (statement_date, dimension, entity_id) DO UPDATE
        SET updated_at = account_statements.updated_at
    RETURNING {_COLUMNS}
""")

_UPDATE_TOTALS_SQL = text(f"""
    UPDATE account_statements
    SET total_sales       = :total_sales,
        total_payouts     = :total_payouts,
        seller_commission = :seller_commission,
        window_commission = :window_commission,
        balance           = :balance,
        total_paid        = :total_paid,
        total_collected   = :total_collected,
        remaining_balance = :remaining_balance,
        ticket_count      = :ticket_count,
        is_settled        = :is_settled,
        can_edit          = :can_edit,
        commission_source = :commission_source,
        updated_at = NOW()
    WHERE id = :id
    RETURNING {_COLUMNS}
""")

# Parent scope is resolved through the organization tables: seller rows only
# carry seller_id, window rows only window_id.
_LIST_FOR_RANGE_SQL = text(f"""
    SELECT {_S_COLUMNS}
    FROM account_statements s
    LEFT JOIN sellers se ON se.id = s.seller_id
    LEFT JOIN windows w ON w.id = COALESCE(s.window_id, se.window_id)
    WHERE s.dimension = :dimension
      AND s.statement_date BETWEEN :start_day AND :end_day
      AND (CAST(:bank_id AS VARCHAR) IS NULL OR COALESCE(s.bank_id, w.bank_id) = :bank_id)
      AND (CAST(:window_id AS VARCHAR) IS NULL OR w.id = :window_id)
      AND (CAST(:seller_id AS VARCHAR) IS NULL OR s.seller_id = :seller_id)
    ORDER BY s.statement_date, s.entity_id
""")

_DELETE_SQL = text("DELETE FROM account_statements WHERE id = :id")


def _row_to_statement(row: Any) -> StatementAggregate:
    return StatementAggregate(
        id=row.id,
        statement_date=row.statement_date,
        dimension=Dimension(row.dimension),
        bank_id=row.bank_id,
        window_id=row.window_id,
        seller_id=row.seller_id,
        total_sales=row.total_sales,
        total_payouts=row.total_payouts,
        seller_commission=row.seller_commission,
        window_commission=row.window_commission,
        balance=row.balance,
        total_paid=row.total_paid,
        total_collected=row.total_collected,
        remaining_balance=row.remaining_balance,
        ticket_count=row.ticket_count,
        is_settled=row.is_settled,
        can_edit=row.can_edit,
        commission_source=CommissionSource(row.commission_source),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def key_columns(key: StatementKey) -> dict[str, str | None]:
    """Exactly one of bank/window/seller id is set, matching the dimension."""
    return {
        "bank_id": key.entity_id if key.dimension is Dimension.BANK else None,
        "window_id": key.entity_id if key.dimension is Dimension.WINDOW else None,
        "seller_id": key.entity_id if key.dimension is Dimension.SELLER else None,
    }


class StatementRepository:
    async def get(self, db: AsyncSession, key: StatementKey) -> StatementAggregate | None:
        result = await db.execute(
            _GET_SQL,
            {
                "statement_date": key.day,
                "dimension": key.dimension.value,
                "entity_id": key.entity_id,
            },
        )
        row = result.fetchone()
        return _row_to_statement(row) if row is not None else None

    async def ensure(self, db: AsyncSession, key: StatementKey) -> StatementAggregate:
        result = await db.execute(
            _ENSURE_SQL,
            {
                "statement_date": key.day,
                "month": key.month,
                "dimension": key.dimension.value,
                **key_columns(key),
            },
        )
        return _row_to_statement(result.fetchone())

    async def lock(self, db: AsyncSession, statement_id: int) -> StatementAggregate:
        result = await db.execute(_LOCK_SQL, {"id": statement_id})
        row = result.fetchone()
        if row is None:
            raise StatementNotFoundError(statement_id)
        return _row_to_statement(row)

    async def update_totals(
        self, db: AsyncSession, stmt: StatementAggregate
    ) -> StatementAggregate:
        result = await db.execute(
            _UPDATE_TOTALS_SQL,
            {
                "id": stmt.id,
                "total_sales": stmt.total_sales,
                "total_payouts": stmt.total_payouts,
                "seller_commission": stmt.seller_commission,
                "window_commission": stmt.window_commission,
                "balance": stmt.balance,
                "total_paid": stmt.total_paid,
                "total_collected": stmt.total_collected,
                "remaining_balance": stmt.remaining_balance,
                "ticket_count": stmt.ticket_count,
                "is_settled": stmt.is_settled,
                "can_edit": stmt.can_edit,
                "commission_source": stmt.commission_source.value,
            },
        )
        row = result.fetchone()
        if row is None:
            raise StatementNotFoundError(stmt.id or 0)
        return _row_to_statement(row)

    async def list_for_range(
        self,
        db: AsyncSession,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> list[StatementAggregate]:
        result = await db.execute(
            _LIST_FOR_RANGE_SQL,
            {
                "dimension": dimension.value,
                "start_day": start_day,
                "end_day": end_day,
                "bank_id": entity_filter.bank_id,
                "window_id": entity_filter.window_id,
                "seller_id": entity_filter.seller_id,
            },
        )
        return [_row_to_statement(r) for r in result.fetchall()]

    async def delete(self, db: AsyncSession, statement_id: int) -> None:
        await db.execute(_DELETE_SQL, {"id": statement_id})
