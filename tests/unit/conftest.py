"""In-memory fakes for the statement engine's repository Protocols.

The fakes keep the contracts of the SQL implementations: scope filters go
through the organization lineage, movement totals count active rows only,
``ensure`` converges on one row per (day, dimension, entity) and every
read hands out a copy so callers never alias stored state.

Organization used throughout the unit tests:

    B1 Banca Central
    ├── W1 Ventanilla Norte ── S1 Ana, S2 Bruno
    └── W2 Ventanilla Sur ──── S3 Carla
"""

import fnmatch
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from src.pos_common.enums import (
    CommissionBeneficiary,
    Dimension,
    MovementKind,
    PaymentMethod,
    SaleStatus,
)
from src.pos_common.errors import StatementNotFoundError
from src.pos_ledger.application.registrar import PaymentRegistrar
from src.pos_ledger.domain.models import Movement, MovementTotals, NewMovement
from src.pos_sales.domain.aggregation import SalesAggregator, sale_business_day
from src.pos_sales.domain.models import DrawInfo, EntityFilter, PlayRecord, SaleRecord
from src.pos_statement.application.breakdown import DayBreakdownBuilder
from src.pos_statement.application.calculator import StatementCalculator, blank_statement
from src.pos_statement.application.carry_over import CarryOverResolver
from src.pos_statement.application.reconciler import RangeReconciler
from src.pos_statement.application.service import AccountStatementService
from src.pos_statement.domain.models import MonthlyClosing, StatementAggregate, StatementKey
from src.pos_statement.infrastructure.cache import StatementCache

BANKS = {"B1": "Banca Central"}
WINDOWS = {"W1": ("B1", "Ventanilla Norte"), "W2": ("B1", "Ventanilla Sur")}
SELLERS = {"S1": ("W1", "Ana"), "S2": ("W1", "Bruno"), "S3": ("W2", "Carla")}


def lineage(dimension: Dimension, entity_id: str) -> EntityFilter | None:
    if dimension is Dimension.BANK:
        return EntityFilter(bank_id=entity_id) if entity_id in BANKS else None
    if dimension is Dimension.WINDOW:
        if entity_id not in WINDOWS:
            return None
        return EntityFilter(bank_id=WINDOWS[entity_id][0], window_id=entity_id)
    if entity_id not in SELLERS:
        return None
    window_id = SELLERS[entity_id][0]
    return EntityFilter(
        bank_id=WINDOWS[window_id][0], window_id=window_id, seller_id=entity_id
    )


def _matches(entity_filter: EntityFilter, found: EntityFilter) -> bool:
    return all(
        wanted is None or wanted == actual
        for wanted, actual in (
            (entity_filter.bank_id, found.bank_id),
            (entity_filter.window_id, found.window_id),
            (entity_filter.seller_id, found.seller_id),
        )
    )


def in_scope(dimension: Dimension, entity_id: str, entity_filter: EntityFilter) -> bool:
    return _matches(entity_filter, lineage(dimension, entity_id) or EntityFilter())


def _names(dimension: Dimension) -> dict[str, str]:
    if dimension is Dimension.BANK:
        return dict(BANKS)
    if dimension is Dimension.WINDOW:
        return {k: v[1] for k, v in WINDOWS.items()}
    return {k: v[1] for k, v in SELLERS.items()}


# ---------------------------------------------------------------------------
# Sales source
# ---------------------------------------------------------------------------


class FakeSalesSource:
    def __init__(self) -> None:
        self.sales: list[SaleRecord] = []
        self.plays: list[PlayRecord] = []
        self.exclusions: set[tuple[str, str, str | None]] = set()
        self.draws: dict[str, DrawInfo] = {}
        self.find_sales_calls = 0

    def add_sale(
        self,
        sale_id: str,
        day: date | None,
        seller_id: str,
        amount: int,
        *,
        payout: int = 0,
        seller_commission: int = 0,
        window_commission: int = 0,
        draw_id: str = "D1",
        status: SaleStatus = SaleStatus.ACTIVE,
        created_at: datetime | None = None,
        with_play: bool = True,
    ) -> SaleRecord:
        """One sale with a single play carrying its commission snapshots."""
        window_id = SELLERS[seller_id][0]
        sale = SaleRecord(
            id=sale_id,
            bank_id=WINDOWS[window_id][0],
            window_id=window_id,
            seller_id=seller_id,
            draw_id=draw_id,
            total_amount=amount,
            total_payout=payout,
            status=status.value,
            business_day=day,
            created_at=created_at or datetime.combine(day, time(15), tzinfo=UTC),
        )
        self.sales.append(sale)
        if with_play:
            self.add_play(
                sale_id,
                amount,
                is_winner=payout > 0,
                payout=payout,
                commission=seller_commission,
                window_commission=window_commission,
            )
        return sale

    def add_play(
        self,
        sale_id: str,
        amount: int,
        *,
        is_winner: bool = False,
        payout: int = 0,
        commission: int = 0,
        beneficiary: CommissionBeneficiary = CommissionBeneficiary.SELLER,
        window_commission: int | None = 0,
    ) -> None:
        self.plays.append(
            PlayRecord(
                sale_id=sale_id,
                amount=amount,
                is_winner=is_winner,
                payout=payout,
                commission_amount=commission,
                commission_beneficiary=beneficiary.value,
                window_commission_amount=window_commission,
            )
        )

    def add_draw(
        self, draw_id: str, name: str, scheduled_at: datetime, lottery_name: str = "Nacional"
    ) -> None:
        self.draws[draw_id] = DrawInfo(draw_id, name, lottery_name, scheduled_at)

    async def find_sales(
        self, start_day: date, end_day: date, entity_filter: EntityFilter, limit: int
    ) -> list[SaleRecord]:
        self.find_sales_calls += 1
        matched = [
            s
            for s in self.sales
            if start_day <= sale_business_day(s) <= end_day
            and _matches(entity_filter, EntityFilter(s.bank_id, s.window_id, s.seller_id))
        ]
        return matched[:limit]

    async def find_plays(self, sale_ids: list[str]) -> list[PlayRecord]:
        wanted = set(sale_ids)
        return [p for p in self.plays if p.sale_id in wanted]

    async def find_exclusions(self, draw_ids: list[str]) -> set[tuple[str, str, str | None]]:
        return {e for e in self.exclusions if e[0] in draw_ids}

    async def find_draws(self, draw_ids: list[str]) -> dict[str, DrawInfo]:
        return {d: self.draws[d] for d in draw_ids if d in self.draws}

    async def find_entity_names(
        self, dimension: Dimension, entity_ids: list[str]
    ) -> dict[str, str]:
        names = _names(dimension)
        return {e: names[e] for e in entity_ids if e in names}

    async def find_entity_scope(
        self, dimension: Dimension, entity_id: str
    ) -> EntityFilter | None:
        return lineage(dimension, entity_id)


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class FakeStatementRepo:
    def __init__(self) -> None:
        self.rows: dict[int, StatementAggregate] = {}
        self.fail_days: set[date] = set()
        self.updates = 0
        self._next_id = 1

    def _find(self, key: StatementKey) -> StatementAggregate | None:
        return next((r for r in self.rows.values() if r.key == key), None)

    def stored(self, day: date, dimension: Dimension, entity_id: str) -> StatementAggregate | None:
        return self._find(StatementKey(day, dimension, entity_id))

    async def get(self, db: object, key: StatementKey) -> StatementAggregate | None:
        row = self._find(key)
        return replace(row) if row is not None else None

    async def ensure(self, db: object, key: StatementKey) -> StatementAggregate:
        if key.day in self.fail_days:
            raise OperationalError(
                "INSERT INTO account_statements", {}, Exception("connection reset")
            )
        row = self._find(key)
        if row is None:
            row = replace(blank_statement(key), id=self._next_id)
            self.rows[row.id] = row
            self._next_id += 1
        return replace(row)

    async def lock(self, db: object, statement_id: int) -> StatementAggregate:
        row = self.rows.get(statement_id)
        if row is None:
            raise StatementNotFoundError(statement_id)
        return replace(row)

    async def update_totals(self, db: object, stmt: StatementAggregate) -> StatementAggregate:
        self.updates += 1
        self.rows[stmt.id] = replace(stmt)
        return replace(stmt)

    async def list_for_range(
        self,
        db: object,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> list[StatementAggregate]:
        return [
            replace(r)
            for r in self.rows.values()
            if r.dimension is dimension
            and start_day <= r.statement_date <= end_day
            and in_scope(dimension, r.entity_id, entity_filter)
        ]

    async def delete(self, db: object, statement_id: int) -> None:
        del self.rows[statement_id]


# ---------------------------------------------------------------------------
# Movements
# ---------------------------------------------------------------------------


def _totals(movements: list[Movement]) -> MovementTotals:
    active = [m for m in movements if not m.is_reversed]
    return MovementTotals(
        paid=sum(m.amount for m in active if m.kind is MovementKind.PAYMENT),
        collected=sum(m.amount for m in active if m.kind is MovementKind.COLLECTION),
        active_count=len(active),
    )


class FakeMovementRepo:
    def __init__(self) -> None:
        self.movements: dict[int, Movement] = {}
        self._next_id = 1

    def add(
        self,
        statement_id: int,
        day: date,
        dimension: Dimension,
        entity_id: str,
        amount: int,
        kind: MovementKind,
        *,
        created_at: datetime | None = None,
        is_reversed: bool = False,
        note: str | None = None,
    ) -> Movement:
        """Seed a movement directly, bypassing the registrar's checks."""
        movement = Movement(
            id=self._next_id,
            statement_id=statement_id,
            statement_date=day,
            dimension=dimension,
            entity_id=entity_id,
            amount=amount,
            kind=kind,
            method=PaymentMethod.CASH.value,
            note=note,
            is_reversed=is_reversed,
            reversed_at=datetime.now(UTC) if is_reversed else None,
            recorded_by="u-admin",
            recorded_by_name="Admin",
            created_at=created_at
            or datetime.combine(day, time(20), tzinfo=UTC) + timedelta(minutes=self._next_id),
        )
        self.movements[movement.id] = movement
        self._next_id += 1
        return movement

    async def get_by_id(self, db: object, movement_id: int) -> Movement | None:
        m = self.movements.get(movement_id)
        return replace(m) if m is not None else None

    async def get_by_idempotency_key(self, db: object, idempotency_key: str) -> Movement | None:
        return next(
            (replace(m) for m in self.movements.values() if m.idempotency_key == idempotency_key),
            None,
        )

    async def insert(self, db: object, new: NewMovement) -> Movement:
        movement = self.add(
            new.statement_id,
            new.statement_date,
            new.dimension,
            new.entity_id,
            new.amount,
            new.kind,
            note=new.note,
        )
        movement.method = new.method
        movement.idempotency_key = new.idempotency_key
        movement.recorded_by = new.recorded_by
        movement.recorded_by_name = new.recorded_by_name
        return replace(movement)

    async def mark_reversed(
        self, db: object, movement_id: int, reversed_by: str, reason: str | None
    ) -> Movement | None:
        m = self.movements[movement_id]
        if m.is_reversed:
            return None
        m.is_reversed = True
        m.reversed_at = datetime.now(UTC)
        m.reversed_by = reversed_by
        m.reversal_reason = reason
        return replace(m)

    async def totals_for_statement(self, db: object, statement_id: int) -> MovementTotals:
        return _totals([m for m in self.movements.values() if m.statement_id == statement_id])

    async def totals_for_range(
        self,
        db: object,
        dimension: Dimension,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
    ) -> dict[tuple[date, str], MovementTotals]:
        grouped: dict[tuple[date, str], list[Movement]] = defaultdict(list)
        for m in self.movements.values():
            if (
                m.dimension is dimension
                and not m.is_reversed
                and start_day <= m.statement_date <= end_day
                and in_scope(dimension, m.entity_id, entity_filter)
            ):
                grouped[(m.statement_date, m.entity_id)].append(m)
        return {key: _totals(ms) for key, ms in grouped.items()}

    async def list_for_day(
        self, db: object, day: date, dimension: Dimension, entity_filter: EntityFilter
    ) -> list[Movement]:
        found = [
            replace(m)
            for m in self.movements.values()
            if m.dimension is dimension
            and m.statement_date == day
            and in_scope(dimension, m.entity_id, entity_filter)
        ]
        return sorted(found, key=lambda m: (m.created_at, m.id), reverse=True)

    async def count_for_statement(self, db: object, statement_id: int) -> int:
        return sum(1 for m in self.movements.values() if m.statement_id == statement_id)


# ---------------------------------------------------------------------------
# Monthly closings
# ---------------------------------------------------------------------------


class FakeClosingRepo:
    def __init__(self) -> None:
        self.rows: dict[tuple[str, Dimension, str], MonthlyClosing] = {}

    def add(self, month: str, dimension: Dimension, entity_id: str, closing_balance: int) -> None:
        self.rows[(month, dimension, entity_id)] = MonthlyClosing(
            closing_month=month,
            dimension=dimension,
            entity_id=entity_id,
            closing_balance=closing_balance,
        )

    async def list_for_month(
        self, db: object, month: str, dimension: Dimension, entity_filter: EntityFilter
    ) -> list[MonthlyClosing]:
        return [
            c
            for (m, d, e), c in self.rows.items()
            if m == month and d is dimension and in_scope(dimension, e, entity_filter)
        ]

    async def upsert(self, db: object, closing: MonthlyClosing) -> MonthlyClosing:
        self.rows[(closing.closing_month, closing.dimension, closing.entity_id)] = closing
        return closing

    async def delete_from_month(
        self, db: object, month: str, dimension: Dimension, entity_id: str
    ) -> int:
        stale = [k for k in self.rows if k[0] >= month and k[1] is dimension and k[2] == entity_id]
        for k in stale:
            del self.rows[k]
        return len(stale)


# ---------------------------------------------------------------------------
# Redis + session
# ---------------------------------------------------------------------------


class FakeRedis:
    """The subset of redis.asyncio.Redis the statement cache uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self._check()
        self.store[key] = value
        self.ttls[key] = ex

    async def scan_iter(self, match: str | None = None, count: int | None = None) -> AsyncIterator[str]:
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                deleted += 1
        return deleted


class FakeSession:
    """Stands in for AsyncSession: commit/rollback are recorded, savepoints counted."""

    def __init__(self) -> None:
        self.commit = AsyncMock()
        self.rollback = AsyncMock()
        self.savepoints = 0

    @asynccontextmanager
    async def begin_nested(self) -> AsyncIterator["FakeSession"]:
        self.savepoints += 1
        yield self


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sales_source() -> FakeSalesSource:
    return FakeSalesSource()


@pytest.fixture
def statement_repo() -> FakeStatementRepo:
    return FakeStatementRepo()


@pytest.fixture
def movement_repo() -> FakeMovementRepo:
    return FakeMovementRepo()


@pytest.fixture
def closing_repo() -> FakeClosingRepo:
    return FakeClosingRepo()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> StatementCache:
    async def provider() -> FakeRedis:
        return fake_redis

    return StatementCache(provider)


@pytest.fixture
def db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def aggregator(sales_source: FakeSalesSource) -> SalesAggregator:
    return SalesAggregator(sales_source)


@pytest.fixture
def calculator(
    aggregator: SalesAggregator,
    statement_repo: FakeStatementRepo,
    movement_repo: FakeMovementRepo,
) -> StatementCalculator:
    return StatementCalculator(aggregator, statement_repo, movement_repo)


@pytest.fixture
def carry_over(
    aggregator: SalesAggregator,
    closing_repo: FakeClosingRepo,
    movement_repo: FakeMovementRepo,
    statement_repo: FakeStatementRepo,
) -> CarryOverResolver:
    return CarryOverResolver(aggregator, closing_repo, movement_repo, statements=statement_repo)


@pytest.fixture
def registrar(
    calculator: StatementCalculator,
    carry_over: CarryOverResolver,
    movement_repo: FakeMovementRepo,
    cache: StatementCache,
) -> PaymentRegistrar:
    return PaymentRegistrar(calculator, carry_over, movement_repo, cache)


@pytest.fixture
def reconciler(
    sales_source: FakeSalesSource,
    aggregator: SalesAggregator,
    calculator: StatementCalculator,
    carry_over: CarryOverResolver,
    statement_repo: FakeStatementRepo,
    movement_repo: FakeMovementRepo,
) -> RangeReconciler:
    return RangeReconciler(
        sales_source, aggregator, calculator, carry_over, statement_repo, movement_repo
    )


@pytest.fixture
def breakdown_builder(
    sales_source: FakeSalesSource,
    aggregator: SalesAggregator,
    carry_over: CarryOverResolver,
    movement_repo: FakeMovementRepo,
) -> DayBreakdownBuilder:
    return DayBreakdownBuilder(sales_source, aggregator, carry_over, movement_repo)


@pytest.fixture
def statement_service(
    sales_source: FakeSalesSource,
    statement_repo: FakeStatementRepo,
    movement_repo: FakeMovementRepo,
    closing_repo: FakeClosingRepo,
    cache: StatementCache,
) -> AccountStatementService:
    return AccountStatementService(
        sales_source, statement_repo, movement_repo, closing_repo, cache
    )
