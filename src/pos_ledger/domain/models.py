"""Domain models for pos_ledger — pure dataclasses, no SQLAlchemy dependency.

A movement is append-only. The only permitted transition is
active -> reversed, which is one-way; reversed movements stay for audit and
are excluded from every total.
"""

from dataclasses import dataclass
from datetime import date, datetime

from src.pos_common.enums import Dimension, MovementKind


@dataclass
class Movement:
    id: int                          # BIGSERIAL
    statement_id: int
    statement_date: date
    dimension: Dimension
    entity_id: str
    amount: int                      # cents, always > 0
    kind: MovementKind
    method: str                      # PaymentMethod value
    note: str | None = None
    idempotency_key: str | None = None
    is_reversed: bool = False
    reversed_at: datetime | None = None
    reversed_by: str | None = None
    reversal_reason: str | None = None
    recorded_by: str | None = None
    recorded_by_name: str | None = None
    created_at: datetime | None = None

    @property
    def signed_amount(self) -> int:
        """Effect on remaining balance: payments add, collections subtract."""
        return self.amount if self.kind is MovementKind.PAYMENT else -self.amount

    @property
    def balance_effect(self) -> int:
        return 0 if self.is_reversed else self.signed_amount


@dataclass(frozen=True)
class MovementTotals:
    """Sums over the ACTIVE movements of one statement (or one day+entity)."""
    paid: int = 0          # cents
    collected: int = 0     # cents
    active_count: int = 0

    def without(self, movement: Movement) -> "MovementTotals":
        """Totals as they would be with ``movement`` removed."""
        if movement.kind is MovementKind.PAYMENT:
            return MovementTotals(self.paid - movement.amount, self.collected, self.active_count - 1)
        return MovementTotals(self.paid, self.collected - movement.amount, self.active_count - 1)


@dataclass(frozen=True)
class NewMovement:
    """Validated input for an insert; ids and timestamps are assigned by the store."""
    statement_id: int
    statement_date: date
    dimension: Dimension
    entity_id: str
    amount: int
    kind: MovementKind
    method: str
    note: str | None = None
    idempotency_key: str | None = None
    recorded_by: str | None = None
    recorded_by_name: str | None = None
