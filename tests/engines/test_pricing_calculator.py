"""
Tests for the bidirectional pricing calculator.

Covers:
- Price from cost and margin, margin from cost and price
- Undefined costing at cost <= 0
- Rejected inputs
- Cost deviation check
- cost -> price -> margin -> price round trip
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stock_engines.pricing import (
    UNDEFINED_COSTING_WARNING,
    EditedField,
    PricingCalculator,
    PricingStatus,
)
from stock_kernel.exceptions import UndefinedCostingError, ValidationError


class TestRecompute:
    def setup_method(self):
        self.calc = PricingCalculator()

    def test_margin_edit_derives_price(self):
        result = self.calc.recompute(
            edited_field=EditedField.MARGIN,
            cost=Decimal("10.00"),
            margin_pct=Decimal("50"),
        )

        assert result.status is PricingStatus.OK
        assert result.sale_price == Decimal("15.00")
        assert result.margin_pct == Decimal("50")

    def test_cost_edit_derives_price(self):
        result = self.calc.recompute(
            edited_field=EditedField.COST,
            cost=Decimal("8.00"),
            margin_pct=Decimal("25"),
        )

        assert result.sale_price == Decimal("10.00")

    def test_price_edit_derives_margin(self):
        result = self.calc.recompute(
            edited_field=EditedField.PRICE,
            cost=Decimal("3.00"),
            sale_price=Decimal("4.00"),
        )

        assert result.margin_pct == Decimal("33.3333")
        assert result.sale_price == Decimal("4.00")

    def test_price_rounds_half_up(self):
        result = self.calc.suggest_price(Decimal("0.10"), Decimal("25"))

        # 0.125 -> 0.13
        assert result.sale_price == Decimal("0.13")

    def test_price_below_cost_gives_negative_margin(self):
        result = self.calc.recompute(
            edited_field=EditedField.PRICE,
            cost=Decimal("10"),
            sale_price=Decimal("8"),
        )

        assert result.margin_pct == Decimal("-20.0000")

    def test_margin_of_minus_100_gives_zero_price(self):
        result = self.calc.suggest_price(Decimal("10"), Decimal("-100"))

        assert result.sale_price == Decimal("0.00")


class TestUndefinedCosting:
    def setup_method(self):
        self.calc = PricingCalculator()

    @pytest.mark.parametrize("cost", [Decimal("0"), Decimal("-1")])
    def test_margin_edit_at_non_positive_cost(self, cost):
        result = self.calc.recompute(
            edited_field=EditedField.MARGIN,
            cost=cost,
            margin_pct=Decimal("30"),
        )

        assert result.status is PricingStatus.UNDEFINED_COSTING
        assert not result.is_defined
        assert result.sale_price is None
        assert result.margin_pct == Decimal("30")
        assert UNDEFINED_COSTING_WARNING in result.warnings

    def test_price_edit_at_zero_cost(self):
        result = self.calc.recompute(
            edited_field=EditedField.PRICE,
            cost=Decimal("0"),
            sale_price=Decimal("12.00"),
        )

        assert result.status is PricingStatus.UNDEFINED_COSTING
        assert result.margin_pct is None
        assert result.sale_price == Decimal("12.00")

    def test_require_raises(self):
        result = self.calc.suggest_price(Decimal("0"), Decimal("10"))

        with pytest.raises(UndefinedCostingError) as exc_info:
            result.require()
        assert exc_info.value.code == "UNDEFINED_COSTING"

    def test_require_returns_defined_result(self):
        result = self.calc.suggest_price(Decimal("2"), Decimal("10"))

        assert result.require() is result


class TestRejectedInputs:
    def setup_method(self):
        self.calc = PricingCalculator()

    def test_negative_price(self):
        with pytest.raises(ValidationError) as exc_info:
            self.calc.recompute(
                edited_field=EditedField.PRICE,
                cost=Decimal("1"),
                sale_price=Decimal("-0.01"),
            )
        assert exc_info.value.field == "sale_price"

    def test_margin_below_minus_100(self):
        with pytest.raises(ValidationError) as exc_info:
            self.calc.suggest_price(Decimal("1"), Decimal("-100.01"))
        assert exc_info.value.field == "margin_pct"

    def test_missing_margin(self):
        with pytest.raises(ValidationError):
            self.calc.recompute(edited_field=EditedField.MARGIN, cost=Decimal("1"))

    def test_missing_price(self):
        with pytest.raises(ValidationError):
            self.calc.recompute(edited_field=EditedField.PRICE, cost=Decimal("1"))


class TestCostDeviation:
    def setup_method(self):
        self.calc = PricingCalculator()

    def test_above_threshold(self):
        deviation = self.calc.cost_deviation(Decimal("10"), Decimal("12.50"), Decimal("20"))

        assert deviation.deviation_pct == Decimal("25.0000")
        assert deviation.exceeds_threshold

    def test_at_threshold_is_not_flagged(self):
        deviation = self.calc.cost_deviation(Decimal("10"), Decimal("8"), Decimal("20"))

        assert deviation.deviation_pct == Decimal("20.0000")
        assert not deviation.exceeds_threshold

    @pytest.mark.parametrize(
        "current, incoming",
        [(Decimal("0"), Decimal("5")), (Decimal("5"), Decimal("0"))],
    )
    def test_needs_two_positive_costs(self, current, incoming):
        assert self.calc.cost_deviation(current, incoming, Decimal("20")) is None


class TestRoundTrip:
    @settings(max_examples=300, deadline=None)
    @given(
        cost=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("10000"), places=2),
        margin=st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2),
    )
    def test_cost_price_margin_price_within_a_cent(self, cost, margin):
        calc = PricingCalculator()

        price = calc.suggest_price(cost, margin).sale_price
        derived_margin = calc.recompute(
            edited_field=EditedField.PRICE, cost=cost, sale_price=price,
        ).margin_pct
        price_again = calc.suggest_price(cost, derived_margin).sale_price

        assert abs(price_again - price) <= Decimal("0.01")
