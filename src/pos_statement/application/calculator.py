"""StatementCalculator — computes and persists one (day, dimension, entity) statement.

Read path (``reconcile``): the candidate statement is computed in memory
from the sales aggregate and the movement totals. Nothing is written when
the candidate equals the stored row, or when there is no stored row and no
activity (a transient zero statement is returned instead).

Write path: the row is created if missing, locked with SELECT ... FOR
UPDATE, the movement totals are re-summed under the lock, and the totals are
written only when they changed. All writes run inside a SAVEPOINT of the
caller's transaction so one failing day never poisons the whole request.

Settled rows keep their stored sales totals unless a forced recompute is
requested; movement totals are always refreshed.
"""

from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import Dimension
from src.pos_ledger.domain.models import MovementTotals
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import DayAggregate, EntityFilter
from src.pos_statement.domain.formulas import totals_changed, with_ledger, with_sales
from src.pos_statement.domain.models import StatementAggregate, StatementKey
from src.pos_statement.domain.repository import StatementRepositoryProtocol
from src.pos_statement.infrastructure.persistence import StatementRepository, key_columns


def blank_statement(key: StatementKey) -> StatementAggregate:
    return StatementAggregate(statement_date=key.day, dimension=key.dimension, **key_columns(key))


class StatementCalculator:
    def __init__(
        self,
        aggregator: SalesAggregator,
        statements: StatementRepositoryProtocol | None = None,
        movements: MovementRepositoryProtocol | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._statements: StatementRepositoryProtocol = statements or StatementRepository()
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def preview(
        self,
        key: StatementKey,
        aggregate: DayAggregate | None,
        existing: StatementAggregate | None,
        ledger: MovementTotals | None,
        force: bool = False,
    ) -> StatementAggregate:
        """The statement as it should be, without touching the store."""
        base = existing or blank_statement(key)
        if not (existing is not None and existing.is_settled and not force):
            base = with_sales(base, aggregate or DayAggregate())
        ledger = ledger or MovementTotals()
        return with_ledger(base, ledger.paid, ledger.collected)

    @staticmethod
    def needs_write(existing: StatementAggregate | None, candidate: StatementAggregate) -> bool:
        if existing is None:
            return candidate.has_activity
        return totals_changed(existing, candidate)

    # ------------------------------------------------------------------
    # Store-backed operations
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        db: AsyncSession,
        key: StatementKey,
        aggregate: DayAggregate | None,
        existing: StatementAggregate | None,
        ledger: MovementTotals | None,
        force: bool = False,
    ) -> StatementAggregate:
        candidate = self.preview(key, aggregate, existing, ledger, force)
        if not self.needs_write(existing, candidate):
            return candidate
        async with db.begin_nested():
            locked = await self._lock_key(db, key)
            return await self._apply_locked(db, locked, aggregate, force)

    async def get_or_compute(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_id: str,
        parent_filter: EntityFilter | None = None,
        force: bool = False,
    ) -> StatementAggregate:
        key = StatementKey(day, dimension, entity_id)
        aggregate = await self._aggregator.aggregate(day, dimension, entity_id, parent_filter)
        existing = await self._statements.get(db, key)
        ledger = None
        if existing is not None:
            ledger = await self._movements.totals_for_statement(db, existing.id)
        return await self.reconcile(db, key, aggregate, existing, ledger, force)

    async def resolve_for_update(
        self, db: AsyncSession, key: StatementKey
    ) -> StatementAggregate:
        """Create-if-missing, lock and refresh the row; the lock lasts until commit."""
        aggregate = await self._aggregator.aggregate(key.day, key.dimension, key.entity_id)
        locked = await self._lock_key(db, key)
        return await self._apply_locked(db, locked, aggregate, force=False)

    async def lock_statement(self, db: AsyncSession, statement_id: int) -> StatementAggregate:
        """Lock an existing row and refresh it from sales and movements."""
        current = await self._statements.lock(db, statement_id)
        aggregate = await self._aggregator.aggregate(
            current.statement_date, current.dimension, current.entity_id
        )
        return await self._apply_locked(db, current, aggregate, force=False)

    async def refresh_ledger(
        self, db: AsyncSession, locked: StatementAggregate
    ) -> StatementAggregate:
        """Re-sum movements of a row already locked by this transaction and persist."""
        totals = await self._movements.totals_for_statement(db, locked.id)
        updated = with_ledger(locked, totals.paid, totals.collected)
        if totals_changed(locked, updated):
            return await self._statements.update_totals(db, updated)
        return updated

    async def _lock_key(self, db: AsyncSession, key: StatementKey) -> StatementAggregate:
        row = await self._statements.ensure(db, key)
        return await self._statements.lock(db, row.id)

    async def _apply_locked(
        self,
        db: AsyncSession,
        locked: StatementAggregate,
        aggregate: DayAggregate | None,
        force: bool,
    ) -> StatementAggregate:
        totals = await self._movements.totals_for_statement(db, locked.id)
        updated = self.preview(locked.key, aggregate, locked, totals, force)
        if totals_changed(locked, updated):
            return await self._statements.update_totals(db, updated)
        return updated
