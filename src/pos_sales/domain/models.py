"""Domain models for pos_sales — pure dataclasses, no SQLAlchemy dependency.

Sale and play records are owned by the ticketing subsystem and are read-only
here. Their commission and payout fields are frozen snapshots computed when
the ticket was sold / evaluated.
"""

from dataclasses import dataclass, field
from datetime import date, datetime

from src.pos_common.enums import CommissionSource, Dimension


@dataclass(frozen=True)
class SaleRecord:
    id: str
    bank_id: str
    window_id: str
    seller_id: str
    draw_id: str
    total_amount: int        # cents
    total_payout: int        # cents, frozen when the draw is evaluated
    status: str              # SaleStatus value
    business_day: date | None
    created_at: datetime

    def entity_id(self, dimension: Dimension) -> str:
        if dimension is Dimension.BANK:
            return self.bank_id
        if dimension is Dimension.WINDOW:
            return self.window_id
        return self.seller_id


@dataclass(frozen=True)
class PlayRecord:
    sale_id: str
    amount: int                          # cents, stake
    is_winner: bool
    payout: int                          # cents
    commission_amount: int               # cents, frozen snapshot
    commission_beneficiary: str          # CommissionBeneficiary value
    window_commission_amount: int | None = None  # cents; None on pre-snapshot records


@dataclass(frozen=True)
class DrawInfo:
    id: str
    name: str
    lottery_name: str
    scheduled_at: datetime


@dataclass(frozen=True)
class EntityFilter:
    """Narrows the sales read: any non-None id must match."""
    bank_id: str | None = None
    window_id: str | None = None
    seller_id: str | None = None

    @classmethod
    def for_entity(
        cls, dimension: Dimension, entity_id: str | None, parent: "EntityFilter | None" = None
    ) -> "EntityFilter":
        base = parent or cls()
        if entity_id is None:
            return base
        if dimension is Dimension.BANK:
            return cls(bank_id=entity_id, window_id=base.window_id, seller_id=base.seller_id)
        if dimension is Dimension.WINDOW:
            return cls(bank_id=base.bank_id, window_id=entity_id, seller_id=base.seller_id)
        return cls(bank_id=base.bank_id, window_id=base.window_id, seller_id=entity_id)


@dataclass
class DayAggregate:
    """Sales-side totals for one group (a day+entity, or a day+draw)."""
    sales: int = 0
    payouts: int = 0
    seller_commission: int = 0
    window_commission: int = 0
    ticket_count: int = 0
    commission_source: CommissionSource = CommissionSource.SNAPSHOT
    # entity ids of the group, used to fill the statement's bank/window/seller columns
    bank_id: str | None = None
    window_id: str | None = None
    seller_id: str | None = None
    draw_ids: set[str] = field(default_factory=set)

    def merge(self, other: "DayAggregate") -> None:
        self.sales += other.sales
        self.payouts += other.payouts
        self.seller_commission += other.seller_commission
        self.window_commission += other.window_commission
        self.ticket_count += other.ticket_count
        self.draw_ids |= other.draw_ids
        if other.commission_source is CommissionSource.DERIVED_FALLBACK:
            self.commission_source = CommissionSource.DERIVED_FALLBACK

    @property
    def is_empty(self) -> bool:
        return self.ticket_count == 0
