"""SalesAggregator — groups counted sales into per-(day, key) totals.

Pure read: no writes, no caching. The only I/O goes through
SalesSourceProtocol. Errors from the source propagate; a partial sum is
never returned.

Rules:
  - Only sales in a counted status (ACTIVE, EVALUATED, PAID) count.
  - Sales blocked by a draw exclusion for their window (or window+seller)
    are skipped.
  - Payouts are taken once per sale that has at least one winning play,
    from the sale's frozen total_payout (never summed per play).
  - Seller commission = commission snapshots tagged SELLER.
    Window commission = window-side snapshot column. When that is zero for a
    group whose WINDOW/BANK-tagged plays carry commission, the total is
    derived from those plays' commission snapshots and the group is tagged
    DERIVED_FALLBACK.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import date

from config.settings import settings
from src.pos_common.datetime_utils import to_business_day
from src.pos_common.enums import (
    COUNTED_SALE_STATUSES,
    CommissionBeneficiary,
    CommissionSource,
    Dimension,
)
from src.pos_common.errors import AggregationLimitExceededError
from src.pos_sales.domain.models import DayAggregate, EntityFilter, PlayRecord, SaleRecord
from src.pos_sales.domain.repository import SalesSourceProtocol

logger = logging.getLogger(__name__)

GroupKey = tuple[date, str]

_ASSIGNED_BENEFICIARIES = frozenset(
    {CommissionBeneficiary.WINDOW.value, CommissionBeneficiary.BANK.value}
)


def is_excluded(
    exclusions: set[tuple[str, str, str | None]],
    draw_id: str,
    window_id: str,
    seller_id: str | None = None,
) -> bool:
    """A window-wide entry (seller None) blocks every seller of that window."""
    if (draw_id, window_id, None) in exclusions:
        return True
    return seller_id is not None and (draw_id, window_id, seller_id) in exclusions


def sale_business_day(sale: SaleRecord) -> date:
    """Explicit business day, falling back to the creation instant in the business zone."""
    return sale.business_day or to_business_day(sale.created_at)


class _GroupAccumulator:
    """Running sums for one group, including the fallback inputs."""

    __slots__ = ("agg", "window_snapshot", "assigned_commission")

    def __init__(self) -> None:
        self.agg = DayAggregate()
        self.window_snapshot = 0
        self.assigned_commission = 0

    def add(self, sale: SaleRecord, plays: list[PlayRecord]) -> None:
        agg = self.agg
        agg.sales += sale.total_amount
        agg.ticket_count += 1
        agg.draw_ids.add(sale.draw_id)
        if any(p.is_winner for p in plays):
            agg.payouts += sale.total_payout
        for p in plays:
            if p.commission_beneficiary == CommissionBeneficiary.SELLER.value:
                agg.seller_commission += p.commission_amount
            elif p.commission_beneficiary in _ASSIGNED_BENEFICIARIES:
                self.assigned_commission += p.commission_amount
            self.window_snapshot += p.window_commission_amount or 0

    def finish(self, label: str) -> DayAggregate:
        agg = self.agg
        if self.window_snapshot == 0 and self.assigned_commission > 0:
            agg.window_commission = self.assigned_commission
            agg.commission_source = CommissionSource.DERIVED_FALLBACK
            logger.warning(
                "Window commission snapshot missing for %s; derived %d cents from play snapshots",
                label,
                self.assigned_commission,
            )
        else:
            agg.window_commission = self.window_snapshot
        return agg


class SalesAggregator:
    def __init__(
        self, source: SalesSourceProtocol, max_rows: int | None = None
    ) -> None:
        self._source = source
        self._max_rows = max_rows if max_rows is not None else settings.AGGREGATION_MAX_ROWS

    async def _load(
        self, start_day: date, end_day: date, entity_filter: EntityFilter
    ) -> tuple[list[SaleRecord], dict[str, list[PlayRecord]]]:
        sales = await self._source.find_sales(
            start_day, end_day, entity_filter, self._max_rows + 1
        )
        if len(sales) > self._max_rows:
            raise AggregationLimitExceededError(self._max_rows)
        sales = [s for s in sales if s.status in COUNTED_SALE_STATUSES]
        if not sales:
            return [], {}

        # Plays and exclusions are independent reads; issue them together
        plays, exclusions = await asyncio.gather(
            self._source.find_plays([s.id for s in sales]),
            self._source.find_exclusions(sorted({s.draw_id for s in sales})),
        )
        kept = [
            s for s in sales
            if not is_excluded(exclusions, s.draw_id, s.window_id, s.seller_id)
        ]
        plays_by_sale: dict[str, list[PlayRecord]] = defaultdict(list)
        for p in plays:
            plays_by_sale[p.sale_id].append(p)
        return kept, plays_by_sale

    async def _group(
        self,
        start_day: date,
        end_day: date,
        entity_filter: EntityFilter,
        key_of: Callable[[SaleRecord], str],
        dimension: Dimension | None,
    ) -> dict[GroupKey, DayAggregate]:
        sales, plays_by_sale = await self._load(start_day, end_day, entity_filter)
        groups: dict[GroupKey, _GroupAccumulator] = {}
        for sale in sales:
            key = (sale_business_day(sale), key_of(sale))
            acc = groups.get(key)
            if acc is None:
                acc = groups[key] = _GroupAccumulator()
                if dimension is not None:
                    _stamp_entity_ids(acc.agg, sale, dimension)
            acc.add(sale, plays_by_sale.get(sale.id, []))
        return {
            key: acc.finish(f"{key[0].isoformat()}/{key[1]}") for key, acc in groups.items()
        }

    async def aggregate_range(
        self,
        start_day: date,
        end_day: date,
        dimension: Dimension,
        entity_filter: EntityFilter | None = None,
    ) -> dict[GroupKey, DayAggregate]:
        """Totals keyed by (business day, entity id of the dimension)."""
        return await self._group(
            start_day,
            end_day,
            entity_filter or EntityFilter(),
            lambda s: s.entity_id(dimension),
            dimension,
        )

    async def aggregate_by_entity(
        self, day: date, dimension: Dimension, entity_filter: EntityFilter | None = None
    ) -> dict[str, DayAggregate]:
        grouped = await self.aggregate_range(day, day, dimension, entity_filter)
        return {entity_id: agg for (_, entity_id), agg in grouped.items()}

    async def aggregate(
        self,
        day: date,
        dimension: Dimension,
        entity_id: str | None,
        parent_filter: EntityFilter | None = None,
    ) -> DayAggregate:
        """Totals of one day for one entity (or every entity when entity_id is None)."""
        entity_filter = EntityFilter.for_entity(dimension, entity_id, parent_filter)
        by_entity = await self.aggregate_by_entity(day, dimension, entity_filter)
        if entity_id is not None:
            return by_entity.get(entity_id, DayAggregate())
        total = DayAggregate()
        for agg in by_entity.values():
            total.merge(agg)
        return total

    async def aggregate_by_draw(
        self, day: date, entity_filter: EntityFilter
    ) -> dict[str, DayAggregate]:
        """Totals of one day keyed by draw id."""
        grouped = await self._group(day, day, entity_filter, lambda s: s.draw_id, None)
        return {draw_id: agg for (_, draw_id), agg in grouped.items()}


def _stamp_entity_ids(agg: DayAggregate, sale: SaleRecord, dimension: Dimension) -> None:
    """Fill the identifying column of the dimension and its parents."""
    agg.bank_id = sale.bank_id
    if dimension in (Dimension.WINDOW, Dimension.SELLER):
        agg.window_id = sale.window_id
    if dimension is Dimension.SELLER:
        agg.seller_id = sale.seller_id
