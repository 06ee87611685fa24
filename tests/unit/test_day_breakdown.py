"""Tests for DayBreakdownBuilder — draws and movements on one running line."""

from datetime import UTC, date, datetime

import pytest

from src.pos_common.enums import BreakdownLineKind, Dimension, MovementKind, SortOrder
from src.pos_statement.application.breakdown import DayBreakdownBuilder

DAY = date(2025, 3, 3)


@pytest.fixture
def busy_day(sales_source, movement_repo) -> None:
    # 12:00 and 19:00 local time
    sales_source.add_draw("D1", "Mediodía", datetime(2025, 3, 3, 18, 0, tzinfo=UTC))
    sales_source.add_draw("D2", "Noche", datetime(2025, 3, 4, 1, 0, tzinfo=UTC))
    sales_source.add_sale("t1", DAY, "S1", 10000, seller_commission=1000, draw_id="D1")
    sales_source.add_sale("t2", DAY, "S1", 5000, payout=2000, seller_commission=500, draw_id="D2")
    movement_repo.add(
        1, DAY, Dimension.SELLER, "S1", 4000, MovementKind.COLLECTION,
        created_at=datetime(2025, 3, 3, 20, 0, tzinfo=UTC), note="Depósito parcial",
    )
    movement_repo.add(
        1, DAY, Dimension.SELLER, "S1", 1000, MovementKind.PAYMENT,
        created_at=datetime(2025, 3, 4, 2, 0, tzinfo=UTC), is_reversed=True,
    )


class TestBuild:
    async def test_chronological_running_total(
        self, breakdown_builder: DayBreakdownBuilder, busy_day, db
    ) -> None:
        result = await breakdown_builder.build(db, DAY, Dimension.SELLER, "S1", sort=SortOrder.ASC)

        assert [ln.kind for ln in result.lines] == [
            BreakdownLineKind.DRAW,
            BreakdownLineKind.MOVEMENT,
            BreakdownLineKind.DRAW,
            BreakdownLineKind.MOVEMENT,
        ]
        assert [ln.balance_effect for ln in result.lines] == [9000, -4000, 2500, 0]
        assert [ln.accumulated for ln in result.lines] == [9000, 5000, 7500, 7500]
        assert [ln.chronological_index for ln in result.lines] == [1, 2, 3, 4]
        assert result.closing_balance == 7500
        assert result.opening_balance == 0

    async def test_line_details(self, breakdown_builder, busy_day, db) -> None:
        result = await breakdown_builder.build(db, DAY, Dimension.SELLER, "S1", sort=SortOrder.ASC)

        draw, collection, _, reversed_payment = result.lines
        assert draw.label == "Mediodía"
        assert draw.lottery_name == "Nacional"
        assert (draw.total_sales, draw.seller_commission, draw.ticket_count) == (10000, 1000, 1)
        assert collection.label == "Depósito parcial"
        assert collection.movement_kind == "COLLECTION"
        assert reversed_payment.is_reversed
        assert reversed_payment.label == "Payment"

    async def test_descending_keeps_chronological_index(
        self, breakdown_builder, busy_day, db
    ) -> None:
        result = await breakdown_builder.build(db, DAY, Dimension.SELLER, "S1")

        assert [ln.chronological_index for ln in result.lines] == [4, 3, 2, 1]
        assert result.lines[0].accumulated == result.closing_balance

    async def test_other_seller_sees_nothing(self, breakdown_builder, busy_day, db) -> None:
        result = await breakdown_builder.build(db, DAY, Dimension.SELLER, "S2")

        assert result.lines == []
        assert result.closing_balance == 0

    async def test_first_of_month_opens_with_carry_over(
        self, breakdown_builder, sales_source, db
    ) -> None:
        sales_source.add_sale("t0", date(2025, 2, 20), "S1", 2000)
        sales_source.add_sale("t1", date(2025, 3, 1), "S1", 1000, draw_id="DX")

        result = await breakdown_builder.build(
            db, date(2025, 3, 1), Dimension.SELLER, "S1", sort=SortOrder.ASC
        )

        opening, draw = result.lines
        assert opening.kind is BreakdownLineKind.OPENING_BALANCE
        assert opening.balance_effect == 2000
        # unknown draw metadata falls back to the draw id
        assert draw.label == "DX"
        assert draw.accumulated == 3000
        assert result.opening_balance == 2000
