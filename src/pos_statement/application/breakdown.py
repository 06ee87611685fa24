"""Per-draw day breakdown interleaved with the day's cash movements.

Lines are ordered chronologically (draws by scheduled instant, movements by
creation instant, the opening-balance line first) to compute the running
``accumulated`` column and the 1-based ``chronological_index``; the result
is then ordered per the caller's sort. Reversed movements are listed with a
zero balance effect.
"""

from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.datetime_utils import day_bounds_utc, month_key
from src.pos_common.enums import BreakdownLineKind, Dimension, SortOrder
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import EntityFilter
from src.pos_sales.domain.repository import SalesSourceProtocol
from src.pos_statement.application.carry_over import CarryOverResolver
from src.pos_statement.domain.formulas import compute_balance
from src.pos_statement.domain.models import BreakdownLine, DayBreakdown

# Opening balance first, then draws before movements at the same instant
_KIND_ORDER = {
    BreakdownLineKind.OPENING_BALANCE: 0,
    BreakdownLineKind.DRAW: 1,
    BreakdownLineKind.MOVEMENT: 2,
}


class DayBreakdownBuilder:
    def __init__(
        self,
        source: SalesSourceProtocol,
        aggregator: SalesAggregator,
        carry_over: CarryOverResolver,
        movements: MovementRepositoryProtocol | None = None,
    ) -> None:
        self._source = source
        self._aggregator = aggregator
        self._carry_over = carry_over
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()

    async def build(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_id: str | None = None,
        scope: EntityFilter | None = None,
        sort: SortOrder = SortOrder.DESC,
    ) -> DayBreakdown:
        entity_filter = EntityFilter.for_entity(dimension, entity_id, scope)
        by_draw = await self._aggregator.aggregate_by_draw(day, entity_filter)
        draws = await self._source.find_draws(sorted(by_draw))
        movements = await self._movements.list_for_day(db, day, dimension, entity_filter)

        opening = 0
        if day.day == 1:
            openings = await self._carry_over.opening_balances(
                db, month_key(day), dimension, entity_filter
            )
            opening = openings.get(entity_id, 0) if entity_id else sum(openings.values())

        day_start, _ = day_bounds_utc(day)
        lines: list[BreakdownLine] = []
        if day.day == 1:
            lines.append(
                BreakdownLine(
                    kind=BreakdownLineKind.OPENING_BALANCE,
                    occurred_at=day_start,
                    label="Opening balance carried from previous month",
                    balance_effect=opening,
                )
            )
        for draw_id, agg in by_draw.items():
            info = draws.get(draw_id)
            lines.append(
                BreakdownLine(
                    kind=BreakdownLineKind.DRAW,
                    occurred_at=info.scheduled_at if info else day_start,
                    label=info.name if info else draw_id,
                    balance_effect=compute_balance(
                        dimension,
                        agg.sales,
                        agg.payouts,
                        agg.seller_commission,
                        agg.window_commission,
                    ),
                    draw_id=draw_id,
                    lottery_name=info.lottery_name if info else None,
                    total_sales=agg.sales,
                    total_payouts=agg.payouts,
                    seller_commission=agg.seller_commission,
                    window_commission=agg.window_commission,
                    ticket_count=agg.ticket_count,
                )
            )
        for m in movements:
            lines.append(
                BreakdownLine(
                    kind=BreakdownLineKind.MOVEMENT,
                    occurred_at=m.created_at or day_start,
                    label=m.note or m.kind.value.title(),
                    balance_effect=m.balance_effect,
                    movement_id=m.id,
                    movement_kind=m.kind.value,
                    method=m.method,
                    is_reversed=m.is_reversed,
                    recorded_by_name=m.recorded_by_name,
                )
            )

        lines.sort(key=lambda ln: (ln.occurred_at, _KIND_ORDER[ln.kind], ln.movement_id or 0))
        accumulated = 0
        for index, line in enumerate(lines, start=1):
            accumulated += line.balance_effect
            line.accumulated = accumulated
            line.chronological_index = index
        if sort is SortOrder.DESC:
            lines.reverse()

        return DayBreakdown(
            day=day,
            dimension=dimension,
            entity_id=entity_id,
            opening_balance=opening,
            closing_balance=accumulated,
            lines=lines,
        )
