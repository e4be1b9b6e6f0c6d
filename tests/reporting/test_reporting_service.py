"""
Tests for ReportingService: profitability, movement report and valuation.

Profitability must be stable: later entries that move a variant's average
cost never change the profit of a sale already made.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_engines.movement_report import DIRECTION_IN, DIRECTION_OUT
from stock_engines.profitability import CostSource, GroupBy
from stock_kernel.domain.dtos import CostInputs, MovementRequest, MovementType, SaleFact
from stock_kernel.exceptions import ValidationError
from stock_services.reporting_service import (
    MovementReportFilters,
    ProfitabilityFilters,
    ReportingService,
)


@pytest.fixture
def reporting(session, stock_config):
    return ReportingService(session, stock_config.costing)


@pytest.fixture
def sold_variant(inventory, make_variant, collaborators):
    """10 tires bought at 10.00, 2 sold at 15.00 on order ``order_id``."""
    variant = make_variant(
        "TIRE-001", opening=(10, Decimal("10.00")), responsible_id=collaborators.buyer.id,
    )
    order_id = uuid4()
    inventory.record_sale(
        variant.variant_id,
        SaleFact(order_id=order_id, unit_sale_price=Decimal("15.00"), quantity=2),
        responsible_id=collaborators.seller.id,
    )
    return variant, order_id


class TestProfitability:
    def test_profit_of_a_sale(self, reporting, sold_variant):
        report = reporting.get_profitability_report()

        (row,) = report.rows
        assert row.sale_total == Decimal("30.00")
        assert row.cost_total == Decimal("20.00")
        assert row.profit == Decimal("10.00")
        assert row.margin_pct == Decimal("33.3333")
        assert row.cost_source is CostSource.SNAPSHOT
        assert report.groups[0].key == ("Tires", "Summer")

    def test_profit_is_stable_after_cost_changes(
        self, reporting, inventory, sold_variant, collaborators,
    ):
        variant, _ = sold_variant
        before = reporting.get_profitability_report()

        inventory.record_movement(
            variant.variant_id,
            MovementType.ENTRY,
            8,
            responsible_id=collaborators.buyer.id,
            cost_inputs=CostInputs(Decimal("20.00")),
        )
        assert inventory.get_variant_state(variant.variant_id).average_cost == Decimal("15")

        after = reporting.get_profitability_report()
        assert after.rows == before.rows
        assert after.totals == before.totals

    def test_sale_without_linkage_is_unpriced(
        self, reporting, inventory, sold_variant, collaborators,
    ):
        variant, _ = sold_variant
        prepared = inventory.prepare_movement(
            MovementRequest(
                variant_id=variant.variant_id,
                movement_type=MovementType.SALE,
                quantity=1,
                responsible_id=collaborators.seller.id,
                reason="legacy counter sale",
            )
        )
        snapshot = inventory.commit_movement(prepared)

        report = reporting.get_profitability_report()

        assert report.unpriced_movement_ids == (snapshot.movement_id,)
        assert len(report.rows) == 1

    def test_date_to_is_inclusive(self, reporting, sold_variant):
        sale_day = date(2024, 3, 1)

        assert len(reporting.get_profitability_report(
            ProfitabilityFilters(date_from=sale_day, date_to=sale_day)
        ).rows) == 1
        assert reporting.get_profitability_report(
            ProfitabilityFilters(date_from=date(2024, 3, 2))
        ).rows == ()
        assert reporting.get_profitability_report(
            ProfitabilityFilters(date_to=date(2024, 2, 29))
        ).rows == ()

    def test_inverted_window_is_rejected(self, reporting):
        with pytest.raises(ValidationError) as exc_info:
            reporting.get_profitability_report(
                ProfitabilityFilters(date_from=date(2024, 3, 2), date_to=date(2024, 3, 1))
            )
        assert exc_info.value.field == "date_to"

    def test_empty_grouping_is_rejected(self, reporting):
        with pytest.raises(ValidationError):
            reporting.get_profitability_report(ProfitabilityFilters(group_by=()))

    def test_category_filter_and_grouping(self, reporting, inventory, make_variant, collaborators, sold_variant):
        rim = make_variant(
            "RIM-001", category="Rims", subcategory="Alloy",
            opening=(4, Decimal("50.00")), responsible_id=collaborators.buyer.id,
        )
        inventory.record_sale(
            rim.variant_id,
            SaleFact(order_id=uuid4(), unit_sale_price=Decimal("80.00"), quantity=1),
            responsible_id=collaborators.seller.id,
        )

        by_category = reporting.get_profitability_report(
            ProfitabilityFilters(group_by=(GroupBy.CATEGORY,))
        )
        assert [(g.key, g.totals.profit) for g in by_category.groups] == [
            (("Rims",), Decimal("30.00")),
            (("Tires",), Decimal("10.00")),
        ]
        assert by_category.totals.profit == Decimal("40.00")

        rims_only = reporting.get_profitability_report(ProfitabilityFilters(category="Rims"))
        assert [row.sku for row in rims_only.rows] == ["RIM-001"]

    def test_report_is_logged(self, reporting, sold_variant, captured_logs):
        reporting.get_profitability_report()

        built = [r for r in captured_logs() if r["message"] == "profitability_report_built"]
        assert built and built[-1]["row_count"] == 1


class TestMovementReport:
    def test_lines_most_recent_first(self, reporting, sold_variant):
        variant, order_id = sold_variant

        report = reporting.get_movement_report()

        sale, entry = report.lines
        assert sale.movement_type is MovementType.SALE
        assert sale.direction == DIRECTION_OUT
        assert sale.reference == str(order_id)
        assert sale.counterparty == "Bruno Seller"
        assert sale.profit == Decimal("10.00")
        assert entry.direction == DIRECTION_IN
        assert entry.reference == "OPENING"
        assert entry.counterparty == "Ana Buyer"
        assert entry.total_cost == Decimal("100.00")

    def test_summary(self, reporting, sold_variant):
        summary = reporting.get_movement_report().summary

        assert summary.units_in == 10
        assert summary.units_out == 2
        assert summary.entry_cost == Decimal("100.00")
        assert summary.sale_value == Decimal("30.00")
        assert summary.sale_profit == Decimal("10.00")
        assert summary.movement_count == 2

    def test_filter_by_type(self, reporting, sold_variant):
        report = reporting.get_movement_report(
            MovementReportFilters(movement_types=(MovementType.ENTRY,))
        )

        assert [line.movement_type for line in report.lines] == [MovementType.ENTRY]

    def test_filter_by_variant(self, reporting, make_variant, collaborators, sold_variant):
        other = make_variant(opening=(1, Decimal("1.00")), responsible_id=collaborators.buyer.id)

        report = reporting.get_movement_report(MovementReportFilters(variant_id=other.variant_id))

        assert len(report.lines) == 1
        assert report.lines[0].sku == other.sku

    def test_window(self, reporting, inventory, sold_variant, collaborators):
        variant, _ = sold_variant
        inventory.record_movement(
            variant.variant_id,
            MovementType.NEGATIVE_ADJUSTMENT,
            1,
            responsible_id=collaborators.buyer.id,
            reason="shrinkage",
            source_document="COUNT-1",
            occurred_at=datetime(2024, 4, 15, 23, 59, tzinfo=UTC),
        )

        april = reporting.get_movement_report(
            MovementReportFilters(date_from=date(2024, 4, 1), date_to=date(2024, 4, 15))
        )

        (line,) = april.lines
        assert line.reference == "COUNT-1"
        assert line.reason == "shrinkage"


class TestValuation:
    def test_valuation_uses_current_cost_and_price(
        self, reporting, inventory, make_variant, collaborators, test_actor_id,
    ):
        make_variant(
            "TIRE-001", sale_price=Decimal("8.00"),
            opening=(10, Decimal("5.00")), responsible_id=collaborators.buyer.id,
        )
        make_variant(
            "RIM-001", category="Rims", subcategory="Alloy", sale_price=Decimal("100.00"),
            opening=(2, Decimal("60.00")), responsible_id=collaborators.buyer.id,
        )
        make_variant("EMPTY-001", sale_price=Decimal("1.00"))

        valuation = reporting.get_stock_valuation()

        assert [(g.category, g.cost_value, g.sale_value) for g in valuation.groups] == [
            ("Rims", Decimal("120.00"), Decimal("200.00")),
            ("Tires", Decimal("50.00"), Decimal("80.00")),
        ]
        assert valuation.potential_profit == Decimal("110.00")
        assert valuation.quantity == 12

    def test_valuation_filtered_by_category(self, reporting, make_variant, collaborators):
        make_variant(opening=(1, Decimal("5.00")), responsible_id=collaborators.buyer.id)
        make_variant(category="Rims", opening=(1, Decimal("5.00")), responsible_id=collaborators.buyer.id)

        valuation = reporting.get_stock_valuation(category="Rims")

        assert [g.category for g in valuation.groups] == ["Rims"]
