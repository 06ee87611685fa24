"""Cross-month balance carry-over and month-end closing snapshots.

The opening balance of month M for an entity is the final remaining
balance of month M-1:

    closing(M-1) = opening(M-1) + sum of daily remaining balances in M-1

A stored snapshot in monthly_closing_balances short-circuits the
recursion. Without one the month is recomputed from source (sales
aggregation + active movements), walking back at most
STATEMENT_MAX_LOOKBACK_MONTHS months; anything older counts as zero.

Settled days contribute their stored sales totals, exactly as the range
statement shows them, so the last accumulated balance of M-1 and the
opening of M always agree even if a settled day's sales change later.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pos_common.datetime_utils import business_today, month_bounds, month_key, previous_month
from src.pos_common.enums import Dimension
from src.pos_common.errors import InvalidDateRangeError
from src.pos_ledger.domain.models import MovementTotals
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import DayAggregate, EntityFilter
from src.pos_statement.domain.formulas import commission_for, compute_balance, compute_remaining
from src.pos_statement.domain.models import MonthlyClosing, StatementAggregate
from src.pos_statement.domain.repository import (
    MonthlyClosingRepositoryProtocol,
    StatementRepositoryProtocol,
)
from src.pos_statement.infrastructure.closing_repository import MonthlyClosingRepository
from src.pos_statement.infrastructure.persistence import StatementRepository

logger = logging.getLogger(__name__)


@dataclass
class _MonthSummary:
    opening: int = 0
    remaining: int = 0
    sales: int = 0
    payouts: int = 0
    commission: int = 0
    paid: int = 0
    collected: int = 0
    ticket_count: int = 0

    @property
    def closing(self) -> int:
        return self.opening + self.remaining


class CarryOverResolver:
    def __init__(
        self,
        aggregator: SalesAggregator,
        closings: MonthlyClosingRepositoryProtocol | None = None,
        movements: MovementRepositoryProtocol | None = None,
        max_lookback_months: int | None = None,
        statements: StatementRepositoryProtocol | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._closings: MonthlyClosingRepositoryProtocol = closings or MonthlyClosingRepository()
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()
        self._statements: StatementRepositoryProtocol = statements or StatementRepository()
        self._max_lookback = (
            max_lookback_months
            if max_lookback_months is not None
            else settings.STATEMENT_MAX_LOOKBACK_MONTHS
        )

    async def previous_month_final_balance(
        self, db: AsyncSession, month: str, dimension: Dimension, entity_id: str
    ) -> int:
        """Final remaining balance of the month before ``month`` for one entity."""
        entity_filter = EntityFilter.for_entity(dimension, entity_id)
        openings = await self.opening_balances(db, month, dimension, entity_filter)
        return openings.get(entity_id, 0)

    async def opening_balances(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        entity_filter: EntityFilter,
        depth: int = 0,
    ) -> dict[str, int]:
        """Opening balance of ``month`` for every entity matching the filter."""
        prev = previous_month(month)
        snapshots = await self._closings.list_for_month(db, prev, dimension, entity_filter)
        result = {s.entity_id: s.closing_balance for s in snapshots}

        single = _single_entity(dimension, entity_filter)
        if single is not None and single in result:
            return result
        if depth >= self._max_lookback:
            return result

        summaries = await self._summarize_month(db, prev, dimension, entity_filter, depth + 1)
        for entity_id, summary in summaries.items():
            result.setdefault(entity_id, summary.closing)
        return result

    async def close_month(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[MonthlyClosing]:
        """Compute and upsert closing snapshots for every entity with a balance in ``month``."""
        month_bounds(month)  # validates the format
        if month >= month_key(business_today()):
            raise InvalidDateRangeError(f"month {month} is not closed yet")

        summaries = await self._summarize_month(db, month, dimension, entity_filter, 0)
        closings = []
        for entity_id in sorted(summaries):
            s = summaries[entity_id]
            closing = await self._closings.upsert(
                db,
                MonthlyClosing(
                    closing_month=month,
                    dimension=dimension,
                    entity_id=entity_id,
                    closing_balance=s.closing,
                    total_sales=s.sales,
                    total_payouts=s.payouts,
                    total_commission=s.commission,
                    total_paid=s.paid,
                    total_collected=s.collected,
                    ticket_count=s.ticket_count,
                ),
            )
            closings.append(closing)
        logger.info(
            "Closed month %s for %s: %d entity snapshots", month, dimension.value, len(closings)
        )
        return closings

    async def invalidate_from(
        self, db: AsyncSession, month: str, dimension: Dimension, entity_id: str
    ) -> int:
        """Drop snapshots that a movement in ``month`` has made stale."""
        return await self._closings.delete_from_month(db, month, dimension, entity_id)

    async def _summarize_month(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        entity_filter: EntityFilter,
        depth: int,
    ) -> dict[str, _MonthSummary]:
        start, end = month_bounds(month)
        openings = await self.opening_balances(db, month, dimension, entity_filter, depth)
        aggregates = await self._aggregator.aggregate_range(start, end, dimension, entity_filter)
        ledger = await self._movements.totals_for_range(db, dimension, start, end, entity_filter)
        stored = await self._statements.list_for_range(db, dimension, start, end, entity_filter)
        settled = {
            (s.statement_date, s.entity_id): s for s in stored if s.is_settled and s.entity_id
        }

        summaries: dict[str, _MonthSummary] = defaultdict(_MonthSummary)
        for entity_id, opening in openings.items():
            summaries[entity_id].opening = opening
        for day_key in set(aggregates) | set(ledger) | set(settled):
            if day_key in settled:
                sales = _frozen_sales(settled[day_key])
            else:
                sales = aggregates.get(day_key, DayAggregate())
            totals = ledger.get(day_key, MovementTotals())
            s = summaries[day_key[1]]
            balance = compute_balance(
                dimension,
                sales.sales,
                sales.payouts,
                sales.seller_commission,
                sales.window_commission,
            )
            s.remaining += compute_remaining(balance, totals.paid, totals.collected)
            s.sales += sales.sales
            s.payouts += sales.payouts
            s.commission += commission_for(
                dimension, sales.seller_commission, sales.window_commission
            )
            s.paid += totals.paid
            s.collected += totals.collected
            s.ticket_count += sales.ticket_count
        return dict(summaries)


def _frozen_sales(stmt: StatementAggregate) -> DayAggregate:
    """Sales totals a settled row was closed with."""
    return DayAggregate(
        sales=stmt.total_sales,
        payouts=stmt.total_payouts,
        seller_commission=stmt.seller_commission,
        window_commission=stmt.window_commission,
        ticket_count=stmt.ticket_count,
    )


def _single_entity(dimension: Dimension, entity_filter: EntityFilter) -> str | None:
    if dimension is Dimension.BANK:
        return entity_filter.bank_id
    if dimension is Dimension.WINDOW:
        return entity_filter.window_id
    return entity_filter.seller_id
