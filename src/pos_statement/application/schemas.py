"""Pydantic schemas for pos_statement API.

Responses are also the cache payload: they are serialized with
``model_dump_json`` and restored with ``model_validate_json``.
"""

import re

from pydantic import BaseModel, Field, field_validator

from src.pos_common.cents import cents_to_display
from src.pos_common.enums import CommissionSource, Dimension
from src.pos_statement.domain.models import (
    BreakdownLine,
    DayBreakdown,
    DayStatement,
    MonthlyClosing,
    PeriodTotals,
    RangeStatement,
    StatementAggregate,
    StatementMeta,
)

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class MonthlyClosingRequest(BaseModel):
    month: str = Field(..., description="Month to close, YYYY-MM")
    dimension: Dimension
    bank_id: str | None = None
    window_id: str | None = None

    @field_validator("month")
    @classmethod
    def _check_month(cls, v: str) -> str:
        if not _MONTH_RE.match(v):
            raise ValueError("month must be YYYY-MM")
        return v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class StatementItem(BaseModel):
    id: int | None
    date: str  # ISO date
    dimension: Dimension
    bank_id: str | None
    window_id: str | None
    seller_id: str | None
    entity_name: str | None = None
    total_sales_cents: int
    total_payouts_cents: int
    seller_commission_cents: int
    window_commission_cents: int
    balance_cents: int
    balance_display: str
    total_paid_cents: int
    total_collected_cents: int
    remaining_balance_cents: int
    remaining_balance_display: str
    ticket_count: int
    is_settled: bool
    can_edit: bool
    commission_source: CommissionSource

    @classmethod
    def from_domain(
        cls, stmt: StatementAggregate, entity_name: str | None = None
    ) -> "StatementItem":
        return cls(
            id=stmt.id,
            date=stmt.statement_date.isoformat(),
            dimension=stmt.dimension,
            bank_id=stmt.bank_id,
            window_id=stmt.window_id,
            seller_id=stmt.seller_id,
            entity_name=entity_name,
            total_sales_cents=stmt.total_sales,
            total_payouts_cents=stmt.total_payouts,
            seller_commission_cents=stmt.seller_commission,
            window_commission_cents=stmt.window_commission,
            balance_cents=stmt.balance,
            balance_display=cents_to_display(stmt.balance),
            total_paid_cents=stmt.total_paid,
            total_collected_cents=stmt.total_collected,
            remaining_balance_cents=stmt.remaining_balance,
            remaining_balance_display=cents_to_display(stmt.remaining_balance),
            ticket_count=stmt.ticket_count,
            is_settled=stmt.is_settled,
            can_edit=stmt.can_edit,
            commission_source=stmt.commission_source,
        )


class DayStatementItem(StatementItem):
    accumulated_balance_cents: int
    accumulated_balance_display: str
    opening_balance_cents: int | None = None
    is_synthetic: bool = False
    is_degraded: bool = False
    by_entity: list[StatementItem] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: DayStatement) -> "DayStatementItem":
        base = StatementItem.from_domain(row.statement, row.entity_name)
        return cls(
            **base.model_dump(),
            accumulated_balance_cents=row.accumulated_balance,
            accumulated_balance_display=cents_to_display(row.accumulated_balance),
            opening_balance_cents=row.opening_balance,
            is_synthetic=row.is_synthetic,
            is_degraded=row.is_degraded,
            by_entity=[
                StatementItem.from_domain(item.statement, item.entity_name)
                for item in row.by_entity
            ],
        )


class TotalsItem(BaseModel):
    total_sales_cents: int
    total_payouts_cents: int
    seller_commission_cents: int
    window_commission_cents: int
    balance_cents: int
    total_paid_cents: int
    total_collected_cents: int
    remaining_balance_cents: int
    ticket_count: int
    settled_days: int
    pending_days: int
    opening_balance_cents: int
    closing_balance_cents: int
    closing_balance_display: str

    @classmethod
    def from_domain(cls, t: PeriodTotals) -> "TotalsItem":
        return cls(
            total_sales_cents=t.total_sales,
            total_payouts_cents=t.total_payouts,
            seller_commission_cents=t.seller_commission,
            window_commission_cents=t.window_commission,
            balance_cents=t.balance,
            total_paid_cents=t.total_paid,
            total_collected_cents=t.total_collected,
            remaining_balance_cents=t.remaining_balance,
            ticket_count=t.ticket_count,
            settled_days=t.settled_days,
            pending_days=t.pending_days,
            opening_balance_cents=t.opening_balance,
            closing_balance_cents=t.closing_balance,
            closing_balance_display=cents_to_display(t.closing_balance),
        )


class StatementMetaItem(BaseModel):
    effective_month: str
    range_start: str
    range_end: str
    month_start: str
    month_to_date_end: str
    dimension: Dimension
    entity_id: str | None
    sort: str
    total_days: int
    degraded_days: list[str]
    all_settled: bool

    @classmethod
    def from_domain(cls, meta: StatementMeta, all_settled: bool) -> "StatementMetaItem":
        return cls(
            effective_month=meta.effective_month,
            range_start=meta.range_start.isoformat(),
            range_end=meta.range_end.isoformat(),
            month_start=meta.month_start.isoformat(),
            month_to_date_end=meta.month_to_date_end.isoformat(),
            dimension=meta.dimension,
            entity_id=meta.entity_id,
            sort=meta.sort.value,
            total_days=meta.total_days,
            degraded_days=[d.isoformat() for d in meta.degraded_days],
            all_settled=all_settled,
        )


class StatementResponse(BaseModel):
    statements: list[DayStatementItem]
    totals: TotalsItem
    month_to_date_totals: TotalsItem
    meta: StatementMetaItem

    @classmethod
    def from_domain(cls, result: RangeStatement) -> "StatementResponse":
        return cls(
            statements=[DayStatementItem.from_row(r) for r in result.rows],
            totals=TotalsItem.from_domain(result.period_totals),
            month_to_date_totals=TotalsItem.from_domain(result.month_to_date_totals),
            meta=StatementMetaItem.from_domain(result.meta, result.all_settled),
        )


class BreakdownLineItem(BaseModel):
    kind: str
    occurred_at: str  # ISO8601 string
    label: str
    chronological_index: int
    balance_effect_cents: int
    accumulated_cents: int
    accumulated_display: str
    draw_id: str | None = None
    lottery_name: str | None = None
    total_sales_cents: int = 0
    total_payouts_cents: int = 0
    seller_commission_cents: int = 0
    window_commission_cents: int = 0
    ticket_count: int = 0
    movement_id: int | None = None
    movement_kind: str | None = None
    method: str | None = None
    is_reversed: bool = False
    recorded_by_name: str | None = None

    @classmethod
    def from_domain(cls, line: BreakdownLine) -> "BreakdownLineItem":
        return cls(
            kind=line.kind.value,
            occurred_at=line.occurred_at.isoformat(),
            label=line.label,
            chronological_index=line.chronological_index,
            balance_effect_cents=line.balance_effect,
            accumulated_cents=line.accumulated,
            accumulated_display=cents_to_display(line.accumulated),
            draw_id=line.draw_id,
            lottery_name=line.lottery_name,
            total_sales_cents=line.total_sales,
            total_payouts_cents=line.total_payouts,
            seller_commission_cents=line.seller_commission,
            window_commission_cents=line.window_commission,
            ticket_count=line.ticket_count,
            movement_id=line.movement_id,
            movement_kind=line.movement_kind,
            method=line.method,
            is_reversed=line.is_reversed,
            recorded_by_name=line.recorded_by_name,
        )


class DayBreakdownResponse(BaseModel):
    date: str
    dimension: Dimension
    entity_id: str | None
    opening_balance_cents: int
    closing_balance_cents: int
    closing_balance_display: str
    lines: list[BreakdownLineItem]

    @classmethod
    def from_domain(cls, b: DayBreakdown) -> "DayBreakdownResponse":
        return cls(
            date=b.day.isoformat(),
            dimension=b.dimension,
            entity_id=b.entity_id,
            opening_balance_cents=b.opening_balance,
            closing_balance_cents=b.closing_balance,
            closing_balance_display=cents_to_display(b.closing_balance),
            lines=[BreakdownLineItem.from_domain(ln) for ln in b.lines],
        )


class MonthlyClosingItem(BaseModel):
    entity_id: str
    closing_balance_cents: int
    closing_balance_display: str
    total_sales_cents: int
    total_payouts_cents: int
    total_commission_cents: int
    total_paid_cents: int
    total_collected_cents: int
    ticket_count: int

    @classmethod
    def from_domain(cls, c: MonthlyClosing) -> "MonthlyClosingItem":
        return cls(
            entity_id=c.entity_id,
            closing_balance_cents=c.closing_balance,
            closing_balance_display=cents_to_display(c.closing_balance),
            total_sales_cents=c.total_sales,
            total_payouts_cents=c.total_payouts,
            total_commission_cents=c.total_commission,
            total_paid_cents=c.total_paid,
            total_collected_cents=c.total_collected,
            ticket_count=c.ticket_count,
        )


class MonthlyClosingResponse(BaseModel):
    month: str
    dimension: Dimension
    closings: list[MonthlyClosingItem]


class DeleteStatementResponse(BaseModel):
    statement_id: int
    deleted: bool = True
