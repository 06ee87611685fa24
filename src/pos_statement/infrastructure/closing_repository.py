"""MonthlyClosingRepository — month-end balance snapshots used for carry-over."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import Dimension
from src.pos_sales.domain.models import EntityFilter
from src.pos_statement.domain.models import MonthlyClosing

_COLUMNS = """
    closing_month, dimension, entity_id, closing_balance,
    total_sales, total_payouts, total_commission,
    total_paid, total_collected, ticket_count, closed_at
"""

_C_COLUMNS = ", ".join("c." + c.strip() for c in _COLUMNS.split(","))

_LIST_FOR_MONTH_SQL = text(f"""
    SELECT {_C_COLUMNS}
    FROM monthly_closing_balances c
    LEFT JOIN sellers se ON c.dimension = 'SELLER' AND se.id = c.entity_id
    LEFT JOIN windows w ON w.id = CASE c.dimension
                                      WHEN 'WINDOW' THEN c.entity_id
                                      WHEN 'SELLER' THEN se.window_id
                                  END
    WHERE c.closing_month = :month
      AND c.dimension = :dimension
      AND (CAST(:bank_id AS VARCHAR) IS NULL
           OR (CASE WHEN c.dimension = 'BANK' THEN c.entity_id ELSE w.bank_id END) = :bank_id)
      AND (CAST(:window_id AS VARCHAR) IS NULL OR w.id = :window_id)
      AND (CAST(:seller_id AS VARCHAR) IS NULL OR se.id = :seller_id)
""")

_UPSERT_SQL = text(f"""
    INSERT INTO monthly_closing_balances
        (closing_month, dimension, entity_id, closing_balance,
         total_sales, total_payouts, total_commission,
         total_paid, total_collected, ticket_count)
    VALUES
        (:closing_month, :dimension, :entity_id, :closing_balance,
         :total_sales, :total_payouts, :total_commission,
         :total_paid, :total_collected, :ticket_count)
    ON CONFLICT (closing_month, dimension, entity_id) DO UPDATE
        SET closing_balance  = EXCLUDED.closing_balance,
            total_sales      = EXCLUDED.total_sales,
            total_payouts    = EXCLUDED.total_payouts,
            total_commission = EXCLUDED.total_commission,
            total_paid       = EXCLUDED.total_paid,
            total_collected  = EXCLUDED.total_collected,
            ticket_count     = EXCLUDED.ticket_count,
            closed_at = NOW()
    RETURNING {_COLUMNS}
""")

_DELETE_FROM_MONTH_SQL = text("""
    DELETE FROM monthly_closing_balances
    WHERE closing_month >= :month
      AND dimension = :dimension
      AND entity_id = :entity_id
""")


def _row_to_closing(row: Any) -> MonthlyClosing:
    return MonthlyClosing(
        closing_month=row.closing_month,
        dimension=Dimension(row.dimension),
        entity_id=row.entity_id,
        closing_balance=row.closing_balance,
        total_sales=row.total_sales,
        total_payouts=row.total_payouts,
        total_commission=row.total_commission,
        total_paid=row.total_paid,
        total_collected=row.total_collected,
        ticket_count=row.ticket_count,
        closed_at=row.closed_at,
    )


class MonthlyClosingRepository:
    async def list_for_month(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[MonthlyClosing]:
        result = await db.execute(
            _LIST_FOR_MONTH_SQL,
            {
                "month": month,
                "dimension": dimension.value,
                "bank_id": entity_filter.bank_id,
                "window_id": entity_filter.window_id,
                "seller_id": entity_filter.seller_id,
            },
        )
        return [_row_to_closing(r) for r in result.fetchall()]

    async def upsert(self, db: AsyncSession, closing: MonthlyClosing) -> MonthlyClosing:
        result = await db.execute(
            _UPSERT_SQL,
            {
                "closing_month": closing.closing_month,
                "dimension": closing.dimension.value,
                "entity_id": closing.entity_id,
                "closing_balance": closing.closing_balance,
                "total_sales": closing.total_sales,
                "total_payouts": closing.total_payouts,
                "total_commission": closing.total_commission,
                "total_paid": closing.total_paid,
                "total_collected": closing.total_collected,
                "ticket_count": closing.ticket_count,
            },
        )
        return _row_to_closing(result.fetchone())

    async def delete_from_month(
        self, db: AsyncSession, month: str, dimension: Dimension, entity_id: str
    ) -> int:
        result = await db.execute(
            _DELETE_FROM_MONTH_SQL,
            {"month": month, "dimension": dimension.value, "entity_id": entity_id},
        )
        return result.rowcount or 0
