"""PaymentRegistrar — registers and reverses cash movements against a statement.

Every mutation runs in one transaction that holds the statement row lock
(SELECT ... FOR UPDATE) from the settled check until commit. Totals are
re-summed from account_movements under that lock, so concurrent
registrations on the same day+entity serialize instead of losing updates.

Idempotency: a movement with the same idempotency key is returned
unchanged with ``replayed=True``. The key is checked before locking (cheap
path) and again under the lock (concurrent duplicates on the same statement).
A duplicate racing in against a different statement trips the unique
index; that IntegrityError is turned into the same replay.

Cache invalidation happens after commit only.
"""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pos_common.cents import is_zero_balance
from src.pos_common.enums import Dimension, MovementKind, PaymentMethod
from src.pos_common.errors import (
    AlreadyReversedError,
    CannotReverseSettledDayError,
    InvalidAmountError,
    InvalidReasonError,
    MovementNotFoundError,
    StatementSettledError,
)
from src.pos_ledger.domain.models import Movement, NewMovement
from src.pos_ledger.domain.repository import MovementRepositoryProtocol
from src.pos_ledger.infrastructure.persistence import MovementRepository
from src.pos_sales.domain.aggregation import SalesAggregator
from src.pos_sales.domain.models import EntityFilter
from src.pos_sales.infrastructure.sales_source import SqlSalesSource
from src.pos_statement.application.calculator import StatementCalculator
from src.pos_statement.application.carry_over import CarryOverResolver
from src.pos_statement.domain.formulas import compute_remaining
from src.pos_statement.domain.models import StatementAggregate, StatementKey
from src.pos_statement.infrastructure.cache import StatementCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInput:
    day: date
    dimension: Dimension
    entity_id: str
    amount: int                      # cents
    kind: MovementKind
    method: str = PaymentMethod.CASH.value
    note: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class RegistrationResult:
    movement: Movement
    statement: StatementAggregate | None  # None on replay
    replayed: bool = False


@dataclass(frozen=True)
class ReversalResult:
    movement: Movement
    statement: StatementAggregate


class PaymentRegistrar:
    def __init__(
        self,
        calculator: StatementCalculator | None = None,
        carry_over: CarryOverResolver | None = None,
        movements: MovementRepositoryProtocol | None = None,
        cache: StatementCache | None = None,
    ) -> None:
        self._movements: MovementRepositoryProtocol = movements or MovementRepository()
        if calculator is None or carry_over is None:
            aggregator = SalesAggregator(SqlSalesSource())
            calculator = calculator or StatementCalculator(aggregator, movements=self._movements)
            carry_over = carry_over or CarryOverResolver(aggregator, movements=self._movements)
        self._calculator = calculator
        self._carry_over = carry_over
        self._cache = cache or StatementCache()

    async def register(
        self,
        db: AsyncSession,
        payment: PaymentInput,
        recorded_by: str,
        recorded_by_name: str | None = None,
    ) -> RegistrationResult:
        replay = await self._find_replay(db, payment.idempotency_key)
        if replay is not None:
            return RegistrationResult(movement=replay, statement=None, replayed=True)

        try:
            result = await self._register_locked(db, payment, recorded_by, recorded_by_name)
            await db.commit()
        except IntegrityError:
            # Same key committed concurrently against another statement
            await db.rollback()
            replay = await self._find_replay(db, payment.idempotency_key)
            if replay is None:
                raise
            return RegistrationResult(movement=replay, statement=None, replayed=True)
        except Exception:
            await db.rollback()
            raise

        if not result.replayed:
            await self._cache.invalidate_day(payment.day)
        return result

    async def get_movement(self, db: AsyncSession, movement_id: int) -> Movement:
        movement = await self._movements.get_by_id(db, movement_id)
        if movement is None:
            raise MovementNotFoundError(movement_id)
        return movement

    async def reverse(
        self,
        db: AsyncSession,
        movement_id: int,
        reversed_by: str,
        reason: str | None = None,
    ) -> ReversalResult:
        movement = await self.get_movement(db, movement_id)
        if movement.is_reversed:
            raise AlreadyReversedError(movement_id)
        if reason is not None and len(reason.strip()) < settings.REVERSAL_REASON_MIN_LENGTH:
            raise InvalidReasonError(settings.REVERSAL_REASON_MIN_LENGTH)

        try:
            result = await self._reverse_locked(db, movement, reversed_by, reason)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._cache.invalidate_day(movement.statement_date)
        return result

    async def list_movements(
        self,
        db: AsyncSession,
        day: date,
        dimension: Dimension,
        entity_filter: EntityFilter,
    ) -> list[Movement]:
        return await self._movements.list_for_day(db, day, dimension, entity_filter)

    async def _find_replay(self, db: AsyncSession, idempotency_key: str | None) -> Movement | None:
        if not idempotency_key:
            return None
        existing = await self._movements.get_by_idempotency_key(db, idempotency_key)
        if existing is not None:
            logger.info(
                "Movement idempotency hit: key=%s movement_id=%d", idempotency_key, existing.id
            )
        return existing

    async def _register_locked(
        self,
        db: AsyncSession,
        payment: PaymentInput,
        recorded_by: str,
        recorded_by_name: str | None,
    ) -> RegistrationResult:
        key = StatementKey(payment.day, payment.dimension, payment.entity_id)
        stmt = await self._calculator.resolve_for_update(db, key)

        replay = await self._find_replay(db, payment.idempotency_key)
        if replay is not None:
            return RegistrationResult(movement=replay, statement=stmt, replayed=True)

        if not stmt.can_edit:
            raise StatementSettledError(stmt.id)
        if payment.amount <= 0:
            raise InvalidAmountError(payment.amount)

        movement = await self._movements.insert(
            db,
            NewMovement(
                statement_id=stmt.id,
                statement_date=payment.day,
                dimension=payment.dimension,
                entity_id=payment.entity_id,
                amount=payment.amount,
                kind=payment.kind,
                method=payment.method,
                note=payment.note,
                idempotency_key=payment.idempotency_key,
                recorded_by=recorded_by,
                recorded_by_name=recorded_by_name,
            ),
        )
        stmt = await self._calculator.refresh_ledger(db, stmt)
        await self._carry_over.invalidate_from(db, key.month, key.dimension, key.entity_id)

        logger.info(
            "Movement %d registered: %s %d cents on %s %s/%s (remaining=%d settled=%s)",
            movement.id,
            movement.kind.value,
            movement.amount,
            payment.day.isoformat(),
            payment.dimension.value,
            payment.entity_id,
            stmt.remaining_balance,
            stmt.is_settled,
        )
        return RegistrationResult(movement=movement, statement=stmt)

    async def _reverse_locked(
        self,
        db: AsyncSession,
        movement: Movement,
        reversed_by: str,
        reason: str | None,
    ) -> ReversalResult:
        stmt = await self._calculator.lock_statement(db, movement.statement_id)

        current = await self.get_movement(db, movement.id)
        if current.is_reversed:
            raise AlreadyReversedError(movement.id)

        totals = await self._movements.totals_for_statement(db, stmt.id)
        after = totals.without(current)
        remaining_after = compute_remaining(stmt.balance, after.paid, after.collected)
        if is_zero_balance(remaining_after) and after.active_count > 0:
            raise CannotReverseSettledDayError(movement.id)

        reversed_movement = await self._movements.mark_reversed(db, movement.id, reversed_by, reason)
        if reversed_movement is None:
            raise AlreadyReversedError(movement.id)

        stmt = await self._calculator.refresh_ledger(db, stmt)
        await self._carry_over.invalidate_from(
            db, stmt.key.month, movement.dimension, movement.entity_id
        )

        logger.info(
            "Movement %d reversed by %s: remaining %d on %s %s/%s",
            movement.id,
            reversed_by,
            stmt.remaining_balance,
            movement.statement_date.isoformat(),
            movement.dimension.value,
            movement.entity_id,
        )
        return ReversalResult(movement=reversed_movement, statement=stmt)
