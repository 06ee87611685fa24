"""Role scope resolution for statement and movement access.

    ADMIN   everything
    BANK    its bank, the bank's windows and their sellers
    WINDOW  its window and the window's sellers
    SELLER  its own seller statements only

``resolve`` returns the entity to query (defaulted from the actor when the
role pins one) and the parent filter that confines unscoped queries.
"""

from src.pos_common.enums import Dimension, Role
from src.pos_common.errors import ForbiddenScopeError
from src.pos_gateway.auth.dependencies import Actor
from src.pos_sales.domain.models import EntityFilter
from src.pos_sales.domain.repository import SalesSourceProtocol
from src.pos_sales.infrastructure.sales_source import SqlSalesSource


class ScopeGuard:
    def __init__(self, source: SalesSourceProtocol | None = None) -> None:
        self._source: SalesSourceProtocol = source or SqlSalesSource()

    async def resolve(
        self, actor: Actor, dimension: Dimension, entity_id: str | None
    ) -> tuple[str | None, EntityFilter]:
        if actor.role is Role.ADMIN:
            return entity_id, EntityFilter()

        if actor.role is Role.SELLER:
            own = actor.seller_id or actor.id
            if dimension is not Dimension.SELLER or entity_id not in (None, own):
                raise ForbiddenScopeError("sellers may only access their own statements")
            return own, EntityFilter()

        if actor.role is Role.WINDOW:
            if not actor.window_id or dimension is Dimension.BANK:
                raise ForbiddenScopeError("window actors may not access bank statements")
            scope = EntityFilter(window_id=actor.window_id)
            if dimension is Dimension.WINDOW:
                if entity_id not in (None, actor.window_id):
                    raise ForbiddenScopeError(f"window {entity_id}")
                return actor.window_id, scope
            await self._check_lineage(dimension, entity_id, scope)
            return entity_id, scope

        # Role.BANK
        if not actor.bank_id:
            raise ForbiddenScopeError("bank actor without bank binding")
        scope = EntityFilter(bank_id=actor.bank_id)
        if dimension is Dimension.BANK:
            if entity_id not in (None, actor.bank_id):
                raise ForbiddenScopeError(f"bank {entity_id}")
            return actor.bank_id, scope
        await self._check_lineage(dimension, entity_id, scope)
        return entity_id, scope

    async def _check_lineage(
        self, dimension: Dimension, entity_id: str | None, scope: EntityFilter
    ) -> None:
        if entity_id is None:
            return
        lineage = await self._source.find_entity_scope(dimension, entity_id)
        if lineage is None:
            raise ForbiddenScopeError(f"{dimension.value.lower()} {entity_id}")
        if scope.bank_id and lineage.bank_id != scope.bank_id:
            raise ForbiddenScopeError(f"{dimension.value.lower()} {entity_id}")
        if scope.window_id and lineage.window_id != scope.window_id:
            raise ForbiddenScopeError(f"{dimension.value.lower()} {entity_id}")


_scope_guard: ScopeGuard | None = None


def get_scope_guard() -> ScopeGuard:
    """FastAPI dependency: the process-wide ScopeGuard."""
    global _scope_guard  # noqa: PLW0603
    if _scope_guard is None:
        _scope_guard = ScopeGuard()
    return _scope_guard
