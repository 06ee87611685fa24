"""Tests for pos_sales.domain.aggregation — SalesAggregator over an in-memory source."""

from datetime import UTC, date, datetime

import pytest

from src.pos_common.enums import CommissionBeneficiary, CommissionSource, Dimension, SaleStatus
from src.pos_common.errors import AggregationLimitExceededError
from src.pos_sales.domain.aggregation import SalesAggregator, is_excluded
from src.pos_sales.domain.models import EntityFilter

DAY = date(2025, 3, 10)


class TestIsExcluded:
    def test_window_wide_entry_blocks_every_seller(self) -> None:
        exclusions = {("D1", "W1", None)}
        assert is_excluded(exclusions, "D1", "W1", "S1")
        assert is_excluded(exclusions, "D1", "W1", "S2")
        assert not is_excluded(exclusions, "D1", "W2", "S3")

    def test_seller_entry_blocks_that_seller_only(self) -> None:
        exclusions = {("D1", "W1", "S1")}
        assert is_excluded(exclusions, "D1", "W1", "S1")
        assert not is_excluded(exclusions, "D1", "W1", "S2")
        assert not is_excluded(exclusions, "D2", "W1", "S1")


class TestAggregateRange:
    async def test_groups_by_day_and_entity(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000, seller_commission=1000, window_commission=500)
        sales_source.add_sale("t2", DAY, "S2", 4000, seller_commission=400, window_commission=200)
        sales_source.add_sale("t3", date(2025, 3, 11), "S1", 2000)

        result = await aggregator.aggregate_range(DAY, date(2025, 3, 11), Dimension.SELLER)

        assert set(result) == {(DAY, "S1"), (DAY, "S2"), (date(2025, 3, 11), "S1")}
        s1 = result[(DAY, "S1")]
        assert (s1.sales, s1.seller_commission, s1.window_commission, s1.ticket_count) == (
            10000, 1000, 500, 1,
        )
        assert (s1.bank_id, s1.window_id, s1.seller_id) == ("B1", "W1", "S1")

    async def test_window_dimension_rolls_up_sellers(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000, window_commission=500)
        sales_source.add_sale("t2", DAY, "S2", 4000, window_commission=200)

        result = await aggregator.aggregate_range(DAY, DAY, Dimension.WINDOW)

        w1 = result[(DAY, "W1")]
        assert (w1.sales, w1.window_commission, w1.ticket_count) == (14000, 700, 2)
        assert w1.seller_id is None

    async def test_only_counted_statuses(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000)
        sales_source.add_sale("t2", DAY, "S1", 9999, status=SaleStatus.CANCELLED)
        sales_source.add_sale("t3", DAY, "S1", 500, status=SaleStatus.PAID)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, "S1")

        assert agg.sales == 10500
        assert agg.ticket_count == 2

    async def test_payout_taken_once_per_winning_sale(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000, payout=4000, with_play=False)
        sales_source.add_play("t1", 500, is_winner=True, payout=2000)
        sales_source.add_play("t1", 500, is_winner=True, payout=2000)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, "S1")

        assert agg.payouts == 4000

    async def test_no_payout_without_winning_play(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000, payout=999, with_play=False)
        sales_source.add_play("t1", 1000, is_winner=False)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, "S1")

        assert agg.payouts == 0

    async def test_excluded_sales_are_skipped(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000, draw_id="D1")
        sales_source.add_sale("t2", DAY, "S2", 2000, draw_id="D1")
        sales_source.add_sale("t3", DAY, "S1", 4000, draw_id="D2")
        sales_source.exclusions = {("D1", "W1", "S1")}

        result = await aggregator.aggregate_by_entity(DAY, Dimension.SELLER)

        assert result["S1"].sales == 4000
        assert result["S2"].sales == 2000

    async def test_business_day_falls_back_to_creation_instant(
        self, sales_source, aggregator
    ) -> None:
        # 03:00 UTC on the 11th is still the 10th in the business zone
        sales_source.add_sale(
            "t1", None, "S1", 1000, created_at=datetime(2025, 3, 11, 3, 0, tzinfo=UTC)
        )

        result = await aggregator.aggregate_range(DAY, date(2025, 3, 11), Dimension.SELLER)

        assert list(result) == [(DAY, "S1")]


class TestWindowCommission:
    async def test_snapshot_column_is_used(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000, window_commission=800, with_play=False)
        sales_source.add_play(
            "t1", 10000, commission=600,
            beneficiary=CommissionBeneficiary.WINDOW, window_commission=800,
        )

        agg = await aggregator.aggregate(DAY, Dimension.WINDOW, "W1")

        assert agg.window_commission == 800
        assert agg.commission_source is CommissionSource.SNAPSHOT

    async def test_missing_snapshot_derives_from_assigned_plays(
        self, sales_source, aggregator, caplog
    ) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000, with_play=False)
        sales_source.add_play(
            "t1", 6000, commission=400,
            beneficiary=CommissionBeneficiary.WINDOW, window_commission=None,
        )
        sales_source.add_play(
            "t1", 4000, commission=300,
            beneficiary=CommissionBeneficiary.BANK, window_commission=None,
        )

        agg = await aggregator.aggregate(DAY, Dimension.WINDOW, "W1")

        assert agg.window_commission == 700
        assert agg.commission_source is CommissionSource.DERIVED_FALLBACK
        assert "snapshot missing" in caplog.text

    async def test_seller_tagged_commission_never_feeds_the_window(
        self, sales_source, aggregator
    ) -> None:
        sales_source.add_sale("t1", DAY, "S1", 10000, seller_commission=900, window_commission=0)

        agg = await aggregator.aggregate(DAY, Dimension.WINDOW, "W1")

        assert agg.seller_commission == 900
        assert agg.window_commission == 0
        assert agg.commission_source is CommissionSource.SNAPSHOT


class TestAggregateVariants:
    async def test_aggregate_without_entity_merges_all(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000)
        sales_source.add_sale("t2", DAY, "S3", 2000)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, None)

        assert (agg.sales, agg.ticket_count) == (3000, 2)

    async def test_aggregate_respects_parent_filter(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000)
        sales_source.add_sale("t2", DAY, "S3", 2000)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, None, EntityFilter(window_id="W2"))

        assert agg.sales == 2000

    async def test_unknown_entity_is_empty(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000)

        agg = await aggregator.aggregate(DAY, Dimension.SELLER, "S2")

        assert agg.is_empty

    async def test_aggregate_by_draw(self, sales_source, aggregator) -> None:
        sales_source.add_sale("t1", DAY, "S1", 1000, draw_id="D1")
        sales_source.add_sale("t2", DAY, "S1", 2000, draw_id="D2")
        sales_source.add_sale("t3", DAY, "S2", 500, draw_id="D2")

        result = await aggregator.aggregate_by_draw(DAY, EntityFilter(seller_id="S1"))

        assert {k: v.sales for k, v in result.items()} == {"D1": 1000, "D2": 2000}


class TestLimit:
    async def test_overflow_raises(self, sales_source) -> None:
        for i in range(3):
            sales_source.add_sale(f"t{i}", DAY, "S1", 100)

        with pytest.raises(AggregationLimitExceededError):
            await SalesAggregator(sales_source, max_rows=2).aggregate_range(
                DAY, DAY, Dimension.SELLER
            )

    async def test_exact_limit_is_allowed(self, sales_source) -> None:
        for i in range(2):
            sales_source.add_sale(f"t{i}", DAY, "S1", 100)

        result = await SalesAggregator(sales_source, max_rows=2).aggregate_range(
            DAY, DAY, Dimension.SELLER
        )

        assert result[(DAY, "S1")].ticket_count == 2
