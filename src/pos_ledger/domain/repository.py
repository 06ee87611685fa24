"""Movement store Protocol — dependency inversion for testability.

Unit tests inject an in-memory fake that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import date
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.enums import Dimension
from src.pos_ledger.domain.models import Movement, MovementTotals, NewMovement
from src.pos_sales.domain.models import EntityFilter


class MovementRepositoryProtocol(Protocol):
    async def get_by_id(self, db: AsyncSession, movement_id: int) -> Movement | None: ...

    async def get_by_idempotency_key(
        self, db: AsyncSession, idempotency_key: str
    ) -> Movement | None: ...

    async def insert(self, db: AsyncSession, new: NewMovement) -> Movement: ...

    async def mark_reversed(
        self,
        db: AsyncSession,
        movement_id: int,
        reversed_by: str,
        reason: str | None,
    ) -> Movement | None:
        """Active -> reversed. Returns None when the movement was already reversed."""
        ...

    async def totals_for_statement(
        self, db: AsyncSession, statement_id: int
    ) -> MovementTotals: ...

    async def totals_for_range(
        self,
        db: AsyncSession,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> dict[tuple[date, str], MovementTotals]: ...

    async def list_for_day(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[Movement]:
        """Every movement of the day (active and reversed), most recent first."""
        ...

    async def count_for_statement(self, db: AsyncSession, statement_id: int) -> int:
        """All movements, reversed included."""
        ...
