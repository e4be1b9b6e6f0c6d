"""
Tests for the stock valuation and movement report engines.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from stock_engines.movement_report import DIRECTION_IN, DIRECTION_OUT, MovementReportEngine
from stock_engines.valuation import StockValuationEngine
from stock_kernel.domain.dtos import MovementType, VariantState
from stock_kernel.selectors.movement_selector import MovementReportRow


def _variant(sku, quantity, average_cost, sale_price=None, category="Tires", subcategory="Summer"):
    return VariantState(
        variant_id=uuid4(),
        sku=sku,
        description=f"Variant {sku}",
        category=category,
        subcategory=subcategory,
        barcode=None,
        quantity=quantity,
        average_cost=Decimal(average_cost),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        margin_pct=None,
        min_stock=0,
        version=1,
    )


def _row(movement_type, quantity=2, real_unit_cost="10.00", **overrides):
    values = dict(
        movement_id=uuid4(),
        variant_id=uuid4(),
        sku="TIRE-001",
        description="Tire",
        category="Tires",
        subcategory="Summer",
        movement_type=movement_type,
        quantity=quantity,
        real_unit_cost=Decimal(real_unit_cost),
        occurred_at=datetime(2024, 3, 1, tzinfo=UTC),
        reason=None,
        invoice_number=None,
        supplier=None,
        source_document=None,
        responsible_name="Ana Buyer",
        order_id=None,
        unit_sale_price=None,
        unit_cost_basis=None,
    )
    values.update(overrides)
    return MovementReportRow(**values)


class TestStockValuation:
    def test_values_stock_at_cost_and_price(self):
        valuation = StockValuationEngine().value(
            variants=(
                _variant("A", 10, "5.00", "8.00"),
                _variant("B", 4, "2.50", "5.00"),
            ),
        )

        (group,) = valuation.groups
        assert group.quantity == 14
        assert group.cost_value == Decimal("60.00")
        assert group.sale_value == Decimal("100.00")
        assert group.potential_profit == Decimal("40.00")
        assert group.margin_pct == Decimal("40.0000")

    def test_empty_and_negative_stock_is_skipped(self):
        valuation = StockValuationEngine().value(
            variants=(_variant("A", 0, "5.00", "8.00"), _variant("B", -2, "5.00", "8.00")),
        )

        assert valuation.groups == ()
        assert valuation.cost_value == Decimal("0")

    def test_missing_price_counts_as_zero_sale_value(self):
        valuation = StockValuationEngine().value(variants=(_variant("A", 3, "5.00"),))

        line = valuation.groups[0].lines[0]
        assert line.unit_price is None
        assert line.sale_value == Decimal("0.00")
        assert valuation.margin_pct == Decimal("0")

    def test_groups_sorted_by_category(self):
        valuation = StockValuationEngine().value(
            variants=(
                _variant("A", 1, "1.00", category="Tires"),
                _variant("B", 1, "1.00", category="Rims", subcategory="Alloy"),
                _variant("C", 1, "1.00", category=None, subcategory=None),
            ),
        )

        assert [(g.category, g.subcategory) for g in valuation.groups] == [
            (None, None),
            ("Rims", "Alloy"),
            ("Tires", "Summer"),
        ]
        assert valuation.quantity == 3


class TestMovementReport:
    def setup_method(self):
        self.engine = MovementReportEngine()

    def test_entry_line(self):
        line = self.engine.line(
            _row(MovementType.ENTRY, quantity=10, real_unit_cost="5.50",
                 invoice_number="NF-1", supplier="Acme")
        )

        assert line.direction == DIRECTION_IN
        assert line.total_cost == Decimal("55.00")
        assert line.reference == "NF-1"
        assert line.counterparty == "Acme"
        assert line.sale_value is None

    def test_entry_without_supplier_shows_responsible(self):
        line = self.engine.line(_row(MovementType.ENTRY))

        assert line.counterparty == "Ana Buyer"

    def test_sale_line_uses_snapshot_cost(self):
        order_id = uuid4()
        line = self.engine.line(
            _row(
                MovementType.SALE,
                real_unit_cost="12.00",
                order_id=order_id,
                unit_sale_price=Decimal("15.00"),
                unit_cost_basis=Decimal("10.00"),
            )
        )

        assert line.direction == DIRECTION_OUT
        assert line.reference == str(order_id)
        assert line.sale_value == Decimal("30.00")
        assert line.profit == Decimal("10.00")
        assert line.margin_pct == Decimal("33.3333")

    def test_sale_without_linkage_has_zero_value(self):
        line = self.engine.line(_row(MovementType.SALE, source_document="POS-9"))

        assert line.reference == "POS-9"
        assert line.sale_value == Decimal("0.00")
        assert line.profit == Decimal("-20.00")
        assert line.margin_pct == Decimal("0")

    def test_adjustment_reference_is_source_document(self):
        line = self.engine.line(
            _row(MovementType.NEGATIVE_ADJUSTMENT, source_document="COUNT-7", reason="shrinkage")
        )

        assert line.direction == DIRECTION_OUT
        assert line.reference == "COUNT-7"
        assert line.reason == "shrinkage"

    def test_summary(self):
        report = self.engine.build(
            rows=(
                _row(MovementType.ENTRY, quantity=10, real_unit_cost="5.00"),
                _row(MovementType.POSITIVE_ADJUSTMENT, quantity=1, real_unit_cost="5.00"),
                _row(
                    MovementType.SALE,
                    quantity=3,
                    real_unit_cost="5.00",
                    unit_sale_price=Decimal("8.00"),
                    unit_cost_basis=Decimal("5.00"),
                ),
                _row(MovementType.EXIT, quantity=1, real_unit_cost="5.00"),
            ),
        )

        summary = report.summary
        assert summary.units_in == 11
        assert summary.units_out == 4
        assert summary.entry_cost == Decimal("50.00")
        assert summary.sale_value == Decimal("24.00")
        assert summary.sale_profit == Decimal("9.00")
        assert summary.movement_count == 4
