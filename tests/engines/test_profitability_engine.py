"""
Tests for the profitability engine.

Profit is computed from the sale's frozen cost snapshot; the engine never
sees a variant's current cost.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_engines.profitability import (
    CostSource,
    GroupBy,
    ProfitabilityEngine,
    SaleLine,
)


def _line(
    quantity=2,
    unit_sale_price="15.00",
    unit_cost_basis="10.00",
    movement_unit_cost="10.00",
    category="Tires",
    subcategory="Summer",
    occurred_at=None,
) -> SaleLine:
    return SaleLine(
        movement_id=uuid4(),
        variant_id=uuid4(),
        sku="TIRE-001",
        category=category,
        subcategory=subcategory,
        occurred_at=occurred_at or datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
        quantity=quantity,
        unit_sale_price=Decimal(unit_sale_price),
        unit_cost_basis=Decimal(unit_cost_basis) if unit_cost_basis is not None else None,
        movement_unit_cost=Decimal(movement_unit_cost),
    )


class TestRow:
    def setup_method(self):
        self.engine = ProfitabilityEngine()

    def test_profit_from_snapshot(self):
        row = self.engine.row(_line())

        assert row.sale_total == Decimal("30.00")
        assert row.cost_total == Decimal("20.00")
        assert row.profit == Decimal("10.00")
        assert row.margin_pct == Decimal("33.3333")
        assert row.cost_source is CostSource.SNAPSHOT

    def test_snapshot_wins_over_movement_cost(self):
        row = self.engine.row(_line(unit_cost_basis="10.00", movement_unit_cost="99.00"))

        assert row.unit_cost == Decimal("10.00")

    def test_falls_back_to_movement_cost(self):
        row = self.engine.row(_line(unit_cost_basis=None, movement_unit_cost="12.00"))

        assert row.cost_source is CostSource.MOVEMENT
        assert row.unit_cost == Decimal("12.00")
        assert row.profit == Decimal("6.00")

    def test_zero_sale_value_has_zero_margin(self):
        row = self.engine.row(_line(unit_sale_price="0"))

        assert row.margin_pct == Decimal("0")
        assert row.profit == Decimal("-20.00")

    def test_loss_gives_negative_margin(self):
        row = self.engine.row(_line(quantity=1, unit_sale_price="8.00", unit_cost_basis="10.00"))

        assert row.profit == Decimal("-2.00")
        assert row.margin_pct == Decimal("-25.0000")


class TestReport:
    def setup_method(self):
        self.engine = ProfitabilityEngine()

    def test_groups_by_category_and_subcategory(self):
        report = self.engine.build_report(
            lines=(
                _line(category="Tires", subcategory="Summer"),
                _line(category="Tires", subcategory="Summer", quantity=1),
                _line(category="Rims", subcategory="Alloy"),
            ),
        )

        keys = [group.key for group in report.groups]
        assert keys == [("Rims", "Alloy"), ("Tires", "Summer")]
        tires = report.groups[1].totals
        assert tires.quantity == 3
        assert tires.sale_total == Decimal("45.00")
        assert tires.profit == Decimal("15.00")
        assert tires.row_count == 2

    def test_uncategorized_group_sorts_first(self):
        report = self.engine.build_report(
            lines=(_line(category="Tires"), _line(category=None)),
            group_by=(GroupBy.CATEGORY,),
        )

        assert [group.key for group in report.groups] == [(None,), ("Tires",)]

    def test_group_by_month(self):
        report = self.engine.build_report(
            lines=(
                _line(occurred_at=datetime(2024, 1, 31, tzinfo=UTC)),
                _line(occurred_at=datetime(2024, 2, 1, tzinfo=UTC)),
                _line(occurred_at=datetime(2024, 2, 15, tzinfo=UTC)),
            ),
            group_by=(GroupBy.MONTH,),
        )

        assert [(g.key, g.totals.row_count) for g in report.groups] == [
            (("2024-01",), 1),
            (("2024-02",), 2),
        ]

    def test_totals_are_sums_of_rows(self):
        lines = (_line(), _line(unit_sale_price="20.00"), _line(unit_cost_basis=None))
        report = self.engine.build_report(lines=lines)

        assert report.totals.profit == sum((row.profit for row in report.rows), Decimal("0"))
        assert report.totals.sale_total == Decimal("100.00")
        assert report.totals.row_count == 3

    def test_empty_report(self):
        report = self.engine.build_report(lines=())

        assert report.rows == ()
        assert report.groups == ()
        assert report.totals.margin_pct == Decimal("0")

    def test_unpriced_sales_are_reported_and_logged(self, captured_logs):
        unpriced = (uuid4(),)

        report = self.engine.build_report(lines=(), unpriced_movement_ids=unpriced)

        assert report.unpriced_movement_ids == unpriced
        assert any(r["message"] == "profitability_unpriced_sales" for r in captured_logs())

    @pytest.mark.parametrize("group_by", [(GroupBy.DAY,), (GroupBy.SUBCATEGORY, GroupBy.MONTH)])
    def test_same_input_same_fingerprint(self, captured_logs, group_by):
        lines = (_line(),)

        self.engine.build_report(lines=lines, group_by=group_by)
        self.engine.build_report(lines=lines, group_by=group_by)

        traces = [
            r for r in captured_logs()
            if r["message"] == "STOCK_ENGINE_TRACE" and r["engine_name"] == "profitability"
        ]
        assert len(traces) == 2
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
