"""pos_statement REST API — statements, day breakdown, cleanup and month closing."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.database import get_db_session
from src.pos_common.enums import Dimension, Role, SortOrder
from src.pos_common.response import ApiResponse, success_response
from src.pos_gateway.auth.dependencies import Actor, get_current_actor, require_roles
from src.pos_gateway.auth.scope import ScopeGuard, get_scope_guard
from src.pos_sales.domain.models import EntityFilter
from src.pos_statement.application.schemas import MonthlyClosingRequest
from src.pos_statement.application.service import AccountStatementService, StatementQuery

router = APIRouter(prefix="/accounts", tags=["accounts"])

_service = AccountStatementService()


def get_statement_service() -> AccountStatementService:
    return _service


def _with_request_id(resp: ApiResponse, request: Request) -> ApiResponse:
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/statement")
async def get_statement(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[AccountStatementService, Depends(get_statement_service)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
    date_from: Annotated[date, Query(alias="from")],
    date_to: Annotated[date, Query(alias="to")],
    dimension: Dimension = Dimension.WINDOW,
    entity_id: str | None = None,
    sort: SortOrder = SortOrder.DESC,
) -> ApiResponse:
    entity_id, scope = await scope_guard.resolve(actor, dimension, entity_id)
    data = await service.get_statement(
        db,
        StatementQuery(
            start=date_from,
            end=date_to,
            dimension=dimension,
            entity_id=entity_id,
            scope=scope,
            role=actor.role,
            sort=sort,
        ),
    )
    return _with_request_id(success_response(data.model_dump()), request)


@router.get("/statement/day")
async def get_day_statement(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[AccountStatementService, Depends(get_statement_service)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
    day: Annotated[date, Query(alias="date")],
    dimension: Dimension,
    entity_id: Annotated[str, Query(min_length=1)],
    force: bool = False,
) -> ApiResponse:
    resolved, scope = await scope_guard.resolve(actor, dimension, entity_id)
    data = await service.get_day_statement(
        db, day, dimension, resolved or entity_id, scope, actor.role, force=force
    )
    return _with_request_id(success_response(data.model_dump()), request)


@router.get("/statement/day/breakdown")
async def get_day_breakdown(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[AccountStatementService, Depends(get_statement_service)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
    day: Annotated[date, Query(alias="date")],
    dimension: Dimension = Dimension.WINDOW,
    entity_id: str | None = None,
    sort: SortOrder = SortOrder.DESC,
) -> ApiResponse:
    entity_id, scope = await scope_guard.resolve(actor, dimension, entity_id)
    data = await service.get_day_breakdown(
        db, day, dimension, entity_id, scope, actor.role, sort
    )
    return _with_request_id(success_response(data.model_dump()), request)


@router.delete("/statement/{statement_id}")
async def delete_statement(
    statement_id: int,
    actor: Annotated[Actor, Depends(require_roles(Role.ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[AccountStatementService, Depends(get_statement_service)],
    request: Request,
) -> ApiResponse:
    data = await service.delete_statement(db, statement_id)
    return _with_request_id(success_response(data.model_dump()), request)


@router.post("/monthly-closing")
async def close_month(
    body: MonthlyClosingRequest,
    actor: Annotated[Actor, Depends(require_roles(Role.ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[AccountStatementService, Depends(get_statement_service)],
    request: Request,
) -> ApiResponse:
    scope = EntityFilter(bank_id=body.bank_id, window_id=body.window_id)
    data = await service.close_month(db, body.month, body.dimension, scope)
    return _with_request_id(success_response(data.model_dump()), request)
