"""Sales source Protocol — the read interface of the ticketing subsystem.

Unit tests inject an in-memory fake that conforms to this Protocol.
Infrastructure layer provides the SQL implementation.
"""

from datetime import date
from typing import Protocol

from src.pos_common.enums import Dimension
from src.pos_sales.domain.models import DrawInfo, EntityFilter, PlayRecord, SaleRecord


class SalesSourceProtocol(Protocol):
    async def find_sales(
        self, start_day: date, end_day: date, entity_filter: EntityFilter, limit: int
    ) -> list[SaleRecord]:
        """Counted-status sales whose business day is in [start_day, end_day]."""
        ...

    async def find_plays(self, sale_ids: list[str]) -> list[PlayRecord]: ...

    async def find_exclusions(
        self, draw_ids: list[str]
    ) -> set[tuple[str, str, str | None]]:
        """(draw_id, window_id, seller_id-or-None) block-list entries for the draws."""
        ...

    async def find_draws(self, draw_ids: list[str]) -> dict[str, DrawInfo]: ...

    async def find_entity_names(
        self, dimension: Dimension, entity_ids: list[str]
    ) -> dict[str, str]: ...

    async def find_entity_scope(
        self, dimension: Dimension, entity_id: str
    ) -> EntityFilter | None:
        """Organizational lineage of an entity (its bank/window/seller ids), None if unknown."""
        ...
