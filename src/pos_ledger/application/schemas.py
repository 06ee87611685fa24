"""Pydantic schemas for pos_ledger API."""

from datetime import date

from pydantic import BaseModel, Field

from src.pos_common.cents import cents_to_display
from src.pos_common.enums import Dimension, MovementKind, PaymentMethod
from src.pos_ledger.domain.models import Movement
from src.pos_statement.application.schemas import StatementItem

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RegisterMovementRequest(BaseModel):
    statement_date: date
    dimension: Dimension
    entity_id: str = Field(..., min_length=1, max_length=64)
    # Sign is validated by the registrar so the error carries a stable kind
    amount_cents: int = Field(..., description="Movement amount in cents, must be positive")
    kind: MovementKind
    method: PaymentMethod = PaymentMethod.CASH
    note: str | None = Field(None, max_length=500)
    idempotency_key: str | None = Field(None, min_length=1, max_length=128)


class ReverseMovementRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class MovementItem(BaseModel):
    id: int
    statement_id: int
    date: str  # ISO date
    dimension: Dimension
    entity_id: str
    amount_cents: int
    amount_display: str
    kind: MovementKind
    method: str
    note: str | None
    idempotency_key: str | None
    is_reversed: bool
    reversed_at: str | None
    reversed_by: str | None
    reversal_reason: str | None
    recorded_by: str | None
    recorded_by_name: str | None
    created_at: str | None  # ISO8601 string

    @classmethod
    def from_domain(cls, m: Movement) -> "MovementItem":
        return cls(
            id=m.id,
            statement_id=m.statement_id,
            date=m.statement_date.isoformat(),
            dimension=m.dimension,
            entity_id=m.entity_id,
            amount_cents=m.amount,
            amount_display=cents_to_display(m.amount),
            kind=m.kind,
            method=m.method,
            note=m.note,
            idempotency_key=m.idempotency_key,
            is_reversed=m.is_reversed,
            reversed_at=m.reversed_at.isoformat() if m.reversed_at else None,
            reversed_by=m.reversed_by,
            reversal_reason=m.reversal_reason,
            recorded_by=m.recorded_by,
            recorded_by_name=m.recorded_by_name,
            created_at=m.created_at.isoformat() if m.created_at else None,
        )


class MovementResponse(BaseModel):
    movement: MovementItem
    statement: StatementItem | None
    replayed: bool = False


class MovementListResponse(BaseModel):
    items: list[MovementItem]
    total: int
