"""pos_ledger REST API — register, reverse and list cash movements."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pos_common.database import get_db_session
from src.pos_common.enums import Dimension, Role
from src.pos_common.response import ApiResponse, success_response
from src.pos_gateway.auth.dependencies import Actor, get_current_actor, require_roles
from src.pos_gateway.auth.scope import ScopeGuard, get_scope_guard
from src.pos_ledger.application.registrar import PaymentInput, PaymentRegistrar
from src.pos_ledger.application.schemas import (
    MovementItem,
    MovementListResponse,
    MovementResponse,
    RegisterMovementRequest,
    ReverseMovementRequest,
)
from src.pos_sales.domain.models import EntityFilter
from src.pos_statement.application.schemas import StatementItem

router = APIRouter(prefix="/accounts", tags=["movements"])

_registrar = PaymentRegistrar()

_can_move = require_roles(Role.ADMIN, Role.BANK, Role.WINDOW)


def get_registrar() -> PaymentRegistrar:
    return _registrar


@router.post("/movements")
async def register_movement(
    body: RegisterMovementRequest,
    actor: Annotated[Actor, Depends(_can_move)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    registrar: Annotated[PaymentRegistrar, Depends(get_registrar)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
) -> ApiResponse:
    await scope_guard.resolve(actor, body.dimension, body.entity_id)
    result = await registrar.register(
        db,
        PaymentInput(
            day=body.statement_date,
            dimension=body.dimension,
            entity_id=body.entity_id,
            amount=body.amount_cents,
            kind=body.kind,
            method=body.method.value,
            note=body.note,
            idempotency_key=body.idempotency_key,
        ),
        recorded_by=actor.id,
        recorded_by_name=actor.name,
    )
    data = MovementResponse(
        movement=MovementItem.from_domain(result.movement),
        statement=StatementItem.from_domain(result.statement) if result.statement else None,
        replayed=result.replayed,
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/movements/{movement_id}/reverse")
async def reverse_movement(
    movement_id: int,
    body: ReverseMovementRequest,
    actor: Annotated[Actor, Depends(_can_move)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    registrar: Annotated[PaymentRegistrar, Depends(get_registrar)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
) -> ApiResponse:
    movement = await registrar.get_movement(db, movement_id)
    await scope_guard.resolve(actor, movement.dimension, movement.entity_id)
    result = await registrar.reverse(db, movement_id, actor.id, body.reason)
    data = MovementResponse(
        movement=MovementItem.from_domain(result.movement),
        statement=StatementItem.from_domain(result.statement),
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/movements")
async def list_movements(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    registrar: Annotated[PaymentRegistrar, Depends(get_registrar)],
    scope_guard: Annotated[ScopeGuard, Depends(get_scope_guard)],
    request: Request,
    day: Annotated[date, Query(alias="date")],
    dimension: Dimension = Dimension.WINDOW,
    entity_id: str | None = None,
) -> ApiResponse:
    entity_id, scope = await scope_guard.resolve(actor, dimension, entity_id)
    movements = await registrar.list_movements(
        db, day, dimension, EntityFilter.for_entity(dimension, entity_id, scope)
    )
    data = MovementListResponse(
        items=[MovementItem.from_domain(m) for m in movements], total=len(movements)
    )
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
