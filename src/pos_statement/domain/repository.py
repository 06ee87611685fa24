"""Statement and monthly-closing Protocols — dependency inversion for testability.

Unit tests inject in-memory fakes that conform to these Protocols.
Infrastructure layer provides the real implementations.
"""

from datetime import date
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import Dimension
from src.pos_sales.domain.models import EntityFilter
from src.pos_statement.domain.models import MonthlyClosing, StatementAggregate, StatementKey


class StatementRepositoryProtocol(Protocol):
    async def get(self, db: AsyncSession, key: StatementKey) -> StatementAggregate | None: ...

    async def ensure(self, db: AsyncSession, key: StatementKey) -> StatementAggregate:
        """Atomic get-or-create of the row for ``key`` (zero totals when created)."""
        ...

    async def lock(self, db: AsyncSession, statement_id: int) -> StatementAggregate:
        """Row lock (SELECT ... FOR UPDATE) held until the caller's transaction ends."""
        ...

    async def update_totals(
        self, db: AsyncSession, stmt: StatementAggregate
    ) -> StatementAggregate: ...

    async def list_for_range(
        self,
        db: AsyncSession,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> list[StatementAggregate]: ...

    async def delete(self, db: AsyncSession, statement_id: int) -> None: ...


class MonthlyClosingRepositoryProtocol(Protocol):
    async def list_for_month(
        self,
        db: AsyncSession,
        month: str,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[MonthlyClosing]: ...

    async def upsert(self, db: AsyncSession, closing: MonthlyClosing) -> MonthlyClosing: ...

    async def delete_from_month(
        self, db: AsyncSession, month: str, dimension: Dimension, entity_id: str
    ) -> int:
        """Drop snapshots of ``month`` and later for one entity; returns rows deleted."""
        ...
