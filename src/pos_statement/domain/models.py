"""Domain models for pos_statement — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import date, datetime

from src.pos_common.datetime_utils import month_key
from src.pos_common.enums import BreakdownLineKind, CommissionSource, Dimension, SortOrder


@dataclass(frozen=True)
class StatementKey:
    """Identity of a statement row: one per (day, dimension, entity)."""
    day: date
    dimension: Dimension
    entity_id: str

    @property
    def month(self) -> str:
        return month_key(self.day)


@dataclass
class StatementAggregate:
    statement_date: date
    dimension: Dimension
    bank_id: str | None = None
    window_id: str | None = None
    seller_id: str | None = None
    total_sales: int = 0          # cents
    total_payouts: int = 0        # cents
    seller_commission: int = 0    # cents
    window_commission: int = 0    # cents
    balance: int = 0              # cents, sales - payouts - commission(dimension)
    total_paid: int = 0           # cents
    total_collected: int = 0      # cents
    remaining_balance: int = 0    # cents, balance - collected + paid
    ticket_count: int = 0
    is_settled: bool = False
    can_edit: bool = True
    commission_source: CommissionSource = CommissionSource.SNAPSHOT
    id: int | None = None         # None until persisted
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def entity_id(self) -> str | None:
        if self.dimension is Dimension.BANK:
            return self.bank_id
        if self.dimension is Dimension.WINDOW:
            return self.window_id
        return self.seller_id

    @property
    def key(self) -> StatementKey:
        return StatementKey(self.statement_date, self.dimension, self.entity_id or "")

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @property
    def has_activity(self) -> bool:
        return self.ticket_count > 0 or self.total_paid > 0 or self.total_collected > 0


@dataclass
class PeriodTotals:
    """Roll-up of day rows; opening/closing only meaningful for month-to-date."""
    total_sales: int = 0
    total_payouts: int = 0
    seller_commission: int = 0
    window_commission: int = 0
    balance: int = 0
    total_paid: int = 0
    total_collected: int = 0
    remaining_balance: int = 0
    ticket_count: int = 0
    settled_days: int = 0
    pending_days: int = 0
    opening_balance: int = 0
    closing_balance: int = 0

    def add(self, stmt: StatementAggregate) -> None:
        self.total_sales += stmt.total_sales
        self.total_payouts += stmt.total_payouts
        self.seller_commission += stmt.seller_commission
        self.window_commission += stmt.window_commission
        self.balance += stmt.balance
        self.total_paid += stmt.total_paid
        self.total_collected += stmt.total_collected
        self.remaining_balance += stmt.remaining_balance
        self.ticket_count += stmt.ticket_count


@dataclass
class EntityDayStatement:
    """One entity's slice of a date-grouped row (drill-down)."""
    entity_id: str
    entity_name: str
    statement: StatementAggregate


@dataclass
class DayStatement:
    """One emitted day row of a range statement."""
    day: date
    statement: StatementAggregate
    accumulated_balance: int = 0      # month opening + remaining so far
    opening_balance: int | None = None  # set on day 1 of a month only
    entity_name: str | None = None
    is_synthetic: bool = False
    is_degraded: bool = False
    by_entity: list[EntityDayStatement] = field(default_factory=list)


@dataclass
class MonthlyClosing:
    closing_month: str              # 'YYYY-MM'
    dimension: Dimension
    entity_id: str
    closing_balance: int            # cents
    total_sales: int = 0
    total_payouts: int = 0
    total_commission: int = 0
    total_paid: int = 0
    total_collected: int = 0
    ticket_count: int = 0
    closed_at: datetime | None = None


@dataclass
class BreakdownLine:
    """One chronological line of a day breakdown (draw, movement or opening balance)."""
    kind: BreakdownLineKind
    occurred_at: datetime
    label: str
    balance_effect: int             # cents, signed
    accumulated: int = 0            # cents, running total in chronological order
    chronological_index: int = 0    # 1-based
    draw_id: str | None = None
    lottery_name: str | None = None
    total_sales: int = 0
    total_payouts: int = 0
    seller_commission: int = 0
    window_commission: int = 0
    ticket_count: int = 0
    movement_id: int | None = None
    movement_kind: str | None = None
    method: str | None = None
    is_reversed: bool = False
    recorded_by_name: str | None = None


@dataclass
class StatementMeta:
    effective_month: str            # month of the range end, 'YYYY-MM'
    range_start: date
    range_end: date
    month_start: date
    month_to_date_end: date
    dimension: Dimension
    entity_id: str | None
    sort: SortOrder
    total_days: int
    degraded_days: list[date] = field(default_factory=list)


@dataclass
class RangeStatement:
    rows: list[DayStatement]
    period_totals: PeriodTotals
    month_to_date_totals: PeriodTotals
    meta: StatementMeta

    @property
    def all_settled(self) -> bool:
        """Every day with activity is settled (and at least one has activity)."""
        active = [r.statement for r in self.rows if r.statement.has_activity]
        return bool(active) and all(s.is_settled for s in active)


@dataclass
class DayBreakdown:
    day: date
    dimension: Dimension
    entity_id: str | None
    opening_balance: int            # cents, non-zero on day 1 of a month only
    closing_balance: int            # cents, accumulated after the last line
    lines: list[BreakdownLine] = field(default_factory=list)
