"""AccountStatementService — read-through Redis cache in front of statement computation.

Read-through: a cached response is returned as-is; on a miss the engine
computes (possibly persisting refreshed statement rows), the transaction is
committed and the response is cached with a TTL chosen by settlement:
every active day settled -> CACHE_TTL_SETTLED_SECONDS, otherwise the
short pending TTL.
"""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pos_common.enums import Dimension, Role, SortOrder
from src.pos_common.errors import StatementHasActivityError
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import EntityFilter
from src.pos_sales.domain.repository import SalesSourceProtocol
from src.pos_sales.infrastructure.sales_source import SqlSalesSource
from src.pos_statement.application.breakdown import DayBreakdownBuilder
from src.pos_statement.application.calculator import StatementCalculator
from src.pos_statement.application.carry_over import CarryOverResolver
from src.pos_statement.application.reconciler import RangeReconciler
from src.pos_statement.application.schemas import (
    DayBreakdownResponse,
    DeleteStatementResponse,
    MonthlyClosingItem,
    MonthlyClosingResponse,
    StatementItem,
    StatementResponse,
)
from src.pos_statement.domain.repository import (
    MonthlyClosingRepositoryProtocol,
    StatementRepositoryProtocol,
)
from src.pos_statement.infrastructure.cache import (
    StatementCache,
    breakdown_key,
    day_statement_key,
    statement_key,
)
from src.pos_statement.infrastructure.closing_repository import MonthlyClosingRepository
from src.pos_statement.infrastructure.persistence import StatementRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatementQuery:
    start: date
    end: date
    dimension: Dimension
    entity_id: str | None
    scope: EntityFilter
    role: Role
    sort: SortOrder = SortOrder.DESC


class AccountStatementService:
    def __init__(
        self,
        source: SalesSourceProtocol | None = None,
        statements: StatementRepositoryProtocol | None = None,
        movements: MovementRepositoryProtocol | None = None,
        closings: MonthlyClosingRepositoryProtocol | None = None,
        cache: StatementCache | None = None,
    ) -> None:
        self._source: SalesSourceProtocol = source or SqlSalesSource()
        self._statements: StatementRepositoryProtocol = statements or StatementRepository()
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()
        self._cache = cache or StatementCache()
        aggregator = SalesAggregator(self._source)
        self._calculator = StatementCalculator(aggregator, self._statements, self._movements)
        self._carry_over = CarryOverResolver(
            aggregator,
            closings or MonthlyClosingRepository(),
            self._movements,
            statements=self._statements,
        )
        self._reconciler = RangeReconciler(
            self._source,
            aggregator,
            self._calculator,
            self._carry_over,
            self._statements,
            self._movements,
        )
        self._breakdown = DayBreakdownBuilder(
            self._source, aggregator, self._carry_over, self._movements
        )

    async def get_statement(self, db: AsyncSession, query: StatementQuery) -> StatementResponse:
        key = statement_key(
            query.start,
            query.end,
            query.dimension,
            query.entity_id,
            query.scope,
            query.role,
            query.sort,
        )
        cached = await self._cache.get(key)
        if cached is not None:
            return StatementResponse.model_validate_json(cached)

        try:
            result = await self._reconciler.get_statement(
                db,
                query.start,
                query.end,
                query.dimension,
                query.entity_id,
                query.scope,
                query.sort,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        response = StatementResponse.from_domain(result)
        ttl = (
            settings.CACHE_TTL_SETTLED_SECONDS
            if result.all_settled
            else settings.CACHE_TTL_PENDING_SECONDS
        )
        await self._cache.set(key, response.model_dump_json(), ttl)
        return response

    async def get_day_statement(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_id: str,
        scope: EntityFilter,
        role: Role,
        force: bool = False,
    ) -> StatementItem:
        key = day_statement_key(day, dimension, entity_id, scope, role)
        if not force:
            cached = await self._cache.get(key)
            if cached is not None:
                return StatementItem.model_validate_json(cached)

        try:
            stmt = await self._calculator.get_or_compute(
                db, day, dimension, entity_id, scope, force=force
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        names = await self._source.find_entity_names(dimension, [entity_id])
        response = StatementItem.from_domain(stmt, names.get(entity_id))
        ttl = (
            settings.CACHE_TTL_SETTLED_SECONDS
            if stmt.is_settled
            else settings.CACHE_TTL_DAY_SECONDS
        )
        await self._cache.set(key, response.model_dump_json(), ttl)
        return response

    async def get_day_breakdown(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_id: str | None,
        scope: EntityFilter,
        role: Role,
        sort: SortOrder = SortOrder.DESC,
    ) -> DayBreakdownResponse:
        key = breakdown_key(day, dimension, entity_id, scope, role, sort)
        cached = await self._cache.get(key)
        if cached is not None:
            return DayBreakdownResponse.model_validate_json(cached)

        breakdown = await self._breakdown.build(db, day, dimension, entity_id, scope, sort)
        response = DayBreakdownResponse.from_domain(breakdown)
        await self._cache.set(key, response.model_dump_json(), settings.CACHE_TTL_DAY_SECONDS)
        return response

    async def delete_statement(
        self, db: AsyncSession, statement_id: int
    ) -> DeleteStatementResponse:
        """Remove a statement that has neither tickets nor movements (reversed ones count)."""
        try:
            locked = await self._statements.lock(db, statement_id)
            if locked.ticket_count > 0:
                raise StatementHasActivityError(
                    statement_id, f"{locked.ticket_count} tickets recorded"
                )
            movement_count = await self._movements.count_for_statement(db, statement_id)
            if movement_count > 0:
                raise StatementHasActivityError(
                    statement_id, f"{movement_count} movements recorded"
                )
            await self._statements.delete(db, statement_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Deleted empty statement %d (%s)", statement_id, locked.statement_date)
        await self._cache.invalidate_day(locked.statement_date)
        return DeleteStatementResponse(statement_id=statement_id)

    async def close_month(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        scope: EntityFilter,
    ) -> MonthlyClosingResponse:
        try:
            closings = await self._carry_over.close_month(db, month, dimension, scope)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._cache.invalidate_month_close(month)
        return MonthlyClosingResponse(
            month=month,
            dimension=dimension,
            closings=[MonthlyClosingItem.from_domain(c) for c in closings],
        )
