"""RangeReconciler — day-by-day statement rows with running balances for a date range.

The computation always spans whole months: from day 1 of the month that
contains the range start, through the later of the range end and the
month-to-date end of the effective month (the month containing the range
end). This gives every emitted row a correct carry-forward balance and
makes month-to-date totals independent of how the caller narrowed the
range.

Per entity and day:
    accumulated(day) = opening(month) + sum of remaining balances up to day
Month openings come from CarryOverResolver for the first month; later
months inside the computed span carry the previous day's accumulated value
forward, so the last day of M and day 1 of M+1 always agree.

A day whose persistence step fails is still emitted with in-memory totals
and is reported in ``meta.degraded_days``; one bad day never fails the call.
"""

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pos_common.datetime_utils import (
    business_today,
    days_between,
    iter_days,
    month_bounds,
    month_key,
)
from src.pos_common.enums import CommissionSource, Dimension, SortOrder
from src.pos_common.errors import InvalidDateRangeError
from src.pos_ledger.domain.models import MovementTotals
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import DayAggregate, EntityFilter
from src.pos_sales.domain.repository import SalesSourceProtocol
from src.pos_statement.application.calculator import StatementCalculator, blank_statement
from src.pos_statement.application.carry_over import CarryOverResolver
from src.pos_statement.domain.models import (
    DayStatement,
    EntityDayStatement,
    PeriodTotals,
    RangeStatement,
    StatementAggregate,
    StatementKey,
    StatementMeta,
)
from src.pos_statement.domain.repository import StatementRepositoryProtocol
from src.pos_statement.infrastructure.persistence import StatementRepository

logger = logging.getLogger(__name__)


def validate_range(start: date, end: date, max_days: int | None = None) -> None:
    limit = max_days if max_days is not None else settings.STATEMENT_MAX_RANGE_DAYS
    if start > end:
        raise InvalidDateRangeError(f"from {start.isoformat()} is after to {end.isoformat()}")
    if days_between(start, end) > limit:
        raise InvalidDateRangeError(f"range exceeds {limit} days")


def combine_statements(
    day: date, dimension: Dimension, statements: list[StatementAggregate]
) -> StatementAggregate:
    """Date-grouped roll-up of several entities' statements for one day.

    Settled only when every entity with activity is settled.
    """
    combined = StatementAggregate(statement_date=day, dimension=dimension)
    for s in statements:
        combined.total_sales += s.total_sales
        combined.total_payouts += s.total_payouts
        combined.seller_commission += s.seller_commission
        combined.window_commission += s.window_commission
        combined.balance += s.balance
        combined.total_paid += s.total_paid
        combined.total_collected += s.total_collected
        combined.remaining_balance += s.remaining_balance
        combined.ticket_count += s.ticket_count
        if s.commission_source is CommissionSource.DERIVED_FALLBACK:
            combined.commission_source = CommissionSource.DERIVED_FALLBACK
    active = [s for s in statements if s.has_activity]
    combined.is_settled = bool(active) and all(s.is_settled for s in active)
    combined.can_edit = not combined.is_settled
    return combined


def summarize(rows: list[DayStatement]) -> PeriodTotals:
    """Totals over chronologically ordered rows."""
    totals = PeriodTotals()
    for row in rows:
        totals.add(row.statement)
        if row.statement.is_settled:
            totals.settled_days += 1
        elif row.statement.has_activity:
            totals.pending_days += 1
    if rows:
        first, last = rows[0], rows[-1]
        totals.opening_balance = first.accumulated_balance - first.statement.remaining_balance
        totals.closing_balance = last.accumulated_balance
    return totals


class RangeReconciler:
    def __init__(
        self,
        source: SalesSourceProtocol,
        aggregator: SalesAggregator,
        calculator: StatementCalculator,
        carry_over: CarryOverResolver,
        statements: StatementRepositoryProtocol | None = None,
        movements: MovementRepositoryProtocol | None = None,
    ) -> None:
        self._source = source
        self._aggregator = aggregator
        self._calculator = calculator
        self._carry_over = carry_over
        self._statements: StatementRepositoryProtocol = statements or StatementRepository()
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()

    async def get_statement(
        self,
        db: AsyncSession,
        start: date,
        end: date,
        dimension: Dimension,
        entity_id: str | None = None,
        scope: EntityFilter | None = None,
        sort: SortOrder = SortOrder.DESC,
    ) -> RangeStatement:
        validate_range(start, end)
        effective_month = month_key(end)
        month_start, month_end = month_bounds(effective_month)
        mtd_end = min(month_end, business_today())
        compute_start = month_bounds(month_key(start))[0]
        compute_end = max(end, mtd_end)
        entity_filter = EntityFilter.for_entity(dimension, entity_id, scope)

        aggregates = await self._aggregator.aggregate_range(
            compute_start, compute_end, dimension, entity_filter
        )
        existing = {
            (s.statement_date, s.entity_id): s
            for s in await self._statements.list_for_range(
                db, dimension, compute_start, compute_end, entity_filter
            )
        }
        ledger = await self._movements.totals_for_range(
            db, dimension, compute_start, compute_end, entity_filter
        )
        openings = await self._carry_over.opening_balances(
            db, month_key(compute_start), dimension, entity_filter
        )

        if entity_id is not None:
            entities = [entity_id]
        else:
            entities = sorted(
                {k[1] for k in aggregates}
                | {k[1] for k in existing}
                | {k[1] for k in ledger}
                | {e for e, v in openings.items() if v != 0}
            )
        names = await self._source.find_entity_names(dimension, entities) if entities else {}

        running = {e: openings.get(e, 0) for e in entities}
        degraded: set[date] = set()
        rows: list[DayStatement] = []
        for day in iter_days(compute_start, compute_end):
            month_opening = sum(running.values()) if day.day == 1 else None
            day_statements: list[StatementAggregate] = []
            for e in entities:
                key = StatementKey(day, dimension, e)
                stmt, failed = await self._reconcile_day(
                    db, key, aggregates.get((day, e)), existing.get((day, e)), ledger.get((day, e))
                )
                if failed or stmt.commission_source is CommissionSource.DERIVED_FALLBACK:
                    degraded.add(day)
                running[e] += stmt.remaining_balance
                day_statements.append(stmt)

            if entity_id is not None:
                stmt = day_statements[0]
                row = DayStatement(
                    day=day,
                    statement=stmt,
                    accumulated_balance=running[entity_id],
                    opening_balance=month_opening,
                    entity_name=names.get(entity_id),
                    is_synthetic=stmt.id is None and not stmt.has_activity,
                    is_degraded=day in degraded,
                )
            else:
                by_entity = sorted(
                    (
                        EntityDayStatement(e, names.get(e, e), s)
                        for e, s in zip(entities, day_statements)
                        if s.has_activity or s.id is not None
                    ),
                    key=lambda item: (item.entity_name.casefold(), item.entity_id),
                )
                row = DayStatement(
                    day=day,
                    statement=combine_statements(day, dimension, day_statements),
                    accumulated_balance=sum(running.values()),
                    opening_balance=month_opening,
                    is_synthetic=not by_entity,
                    is_degraded=day in degraded,
                    by_entity=by_entity,
                )
            rows.append(row)

        in_range = [r for r in rows if start <= r.day <= end]
        month_rows = [r for r in rows if month_start <= r.day <= mtd_end]
        if sort is SortOrder.DESC:
            in_range.reverse()
        if degraded:
            logger.warning(
                "Statement %s..%s %s returned with %d degraded days",
                start.isoformat(),
                end.isoformat(),
                dimension.value,
                len(degraded),
            )

        return RangeStatement(
            rows=in_range,
            period_totals=summarize([r for r in rows if start <= r.day <= end]),
            month_to_date_totals=summarize(month_rows),
            meta=StatementMeta(
                effective_month=effective_month,
                range_start=start,
                range_end=end,
                month_start=month_start,
                month_to_date_end=mtd_end,
                dimension=dimension,
                entity_id=entity_id,
                sort=sort,
                total_days=len(in_range),
                degraded_days=sorted(d for d in degraded if start <= d <= end),
            ),
        )

    async def _reconcile_day(
        self,
        db: AsyncSession,
        key: StatementKey,
        aggregate: DayAggregate | None,
        existing: StatementAggregate | None,
        ledger: MovementTotals | None,
    ) -> tuple[StatementAggregate, bool]:
        if aggregate is None and existing is None and ledger is None:
            return blank_statement(key), False
        try:
            return await self._calculator.reconcile(db, key, aggregate, existing, ledger), False
        except SQLAlchemyError:
            logger.warning(
                "Degraded statement %s %s/%s: persisting failed, serving computed totals",
                key.day.isoformat(),
                key.dimension.value,
                key.entity_id,
                exc_info=True,
            )
            return self._calculator.preview(key, aggregate, existing, ledger), True
