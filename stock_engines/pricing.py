"""
stock_engines.pricing -- Bidirectional cost / margin / sale price derivation.

Responsibility:
    Given the field the user edited (cost, margin or price), recompute the
    one dependent field:

        cost or margin edited -> price  = cost * (1 + margin / 100)
        price edited          -> margin = (price - cost) / cost * 100

    Also flags an incoming cost that deviates sharply from the current
    average.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumed by
    InventoryService (price update on entry, manual overrides).

Invariants enforced:
    - cost <= 0 never yields a number: the result has status
      UNDEFINED_COSTING and empty dependent fields.
    - Price rounds to price precision (default 2 places), margin to margin
      precision (default 4 places), ROUND_HALF_UP.
    - A negative price or a margin below -100 % is rejected.

Failure modes:
    - ValidationError for a missing required input, a negative price or a
      margin below -100 %.
    - UndefinedCostingError only from PricingResult.require().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from stock_engines.tracer import traced_engine
from stock_kernel.db.types import (
    HUNDRED,
    MARGIN_DECIMAL_PLACES,
    PRICE_DECIMAL_PLACES,
    ZERO,
    round_margin,
    round_price,
)
from stock_kernel.exceptions import UndefinedCostingError, ValidationError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")

MIN_MARGIN_PCT = Decimal("-100")

COST_DEVIATION_WARNING = "cost_deviation"
UNDEFINED_COSTING_WARNING = "undefined_costing"


class EditedField(str, Enum):
    """Which of the three pricing fields the user changed."""

    COST = "cost"
    MARGIN = "margin"
    PRICE = "price"


class PricingStatus(str, Enum):
    OK = "ok"
    UNDEFINED_COSTING = "undefined_costing"


@dataclass(frozen=True)
class PricingResult:
    """
    Outcome of one pricing recomputation.

    For UNDEFINED_COSTING the field that could not be derived is None; the
    edited value is echoed back unchanged.
    """

    status: PricingStatus
    edited_field: EditedField
    cost: Decimal
    margin_pct: Decimal | None
    sale_price: Decimal | None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_defined(self) -> bool:
        return self.status is PricingStatus.OK

    def require(self) -> PricingResult:
        """Return self, or raise UndefinedCostingError when costing is undefined."""
        if not self.is_defined:
            raise UndefinedCostingError(self.cost)
        return self


@dataclass(frozen=True)
class CostDeviation:
    """An incoming cost compared to the current average."""

    current_cost: Decimal
    incoming_cost: Decimal
    deviation_pct: Decimal
    threshold_pct: Decimal

    @property
    def exceeds_threshold(self) -> bool:
        return self.deviation_pct > self.threshold_pct


class PricingCalculator:
    """
    Pure price/margin calculator.

    Contract:
        No I/O, deterministic.  Exactly one dependent field is recomputed per
        call.
    """

    def __init__(
        self,
        price_decimal_places: int = PRICE_DECIMAL_PLACES,
        margin_decimal_places: int = MARGIN_DECIMAL_PLACES,
    ):
        self.price_decimal_places = price_decimal_places
        self.margin_decimal_places = margin_decimal_places

    @traced_engine(
        "pricing", "1.0",
        fingerprint_fields=("edited_field", "cost", "margin_pct", "sale_price"),
    )
    def recompute(
        self,
        *,
        edited_field: EditedField,
        cost: Decimal,
        margin_pct: Decimal | None = None,
        sale_price: Decimal | None = None,
    ) -> PricingResult:
        """
        Recompute the dependent field for ``edited_field``.

        Preconditions:
            COST/MARGIN edits need margin_pct; PRICE edits need sale_price.
        """
        if cost is None:
            raise ValidationError("cost", "cost is required")

        if edited_field is EditedField.PRICE:
            if sale_price is None:
                raise ValidationError("sale_price", "sale price is required when editing the price")
            if sale_price < ZERO:
                raise ValidationError("sale_price", f"sale price cannot be negative ({sale_price})")
            if cost <= ZERO:
                return self._undefined(edited_field, cost, margin_pct=None, sale_price=sale_price)
            margin = round_margin((sale_price - cost) / cost * HUNDRED, self.margin_decimal_places)
            return PricingResult(
                status=PricingStatus.OK,
                edited_field=edited_field,
                cost=cost,
                margin_pct=margin,
                sale_price=sale_price,
            )

        if margin_pct is None:
            raise ValidationError("margin_pct", "margin is required when editing cost or margin")
        if margin_pct < MIN_MARGIN_PCT:
            raise ValidationError("margin_pct", f"margin cannot be below -100% ({margin_pct})")
        if cost <= ZERO:
            return self._undefined(edited_field, cost, margin_pct=margin_pct, sale_price=None)

        price = round_price(cost * (1 + margin_pct / HUNDRED), self.price_decimal_places)
        return PricingResult(
            status=PricingStatus.OK,
            edited_field=edited_field,
            cost=cost,
            margin_pct=margin_pct,
            sale_price=price,
        )

    def _undefined(
        self,
        edited_field: EditedField,
        cost: Decimal,
        margin_pct: Decimal | None,
        sale_price: Decimal | None,
    ) -> PricingResult:
        logger.info(
            "pricing_undefined_costing",
            extra={"edited_field": edited_field.value, "cost": str(cost)},
        )
        return PricingResult(
            status=PricingStatus.UNDEFINED_COSTING,
            edited_field=edited_field,
            cost=cost,
            margin_pct=margin_pct,
            sale_price=sale_price,
            warnings=(UNDEFINED_COSTING_WARNING,),
        )

    def suggest_price(self, cost: Decimal, margin_pct: Decimal) -> PricingResult:
        """Price for ``cost`` at ``margin_pct`` (a MARGIN edit)."""
        return self.recompute(
            edited_field=EditedField.MARGIN,
            cost=cost,
            margin_pct=margin_pct,
        )

    def cost_deviation(
        self,
        current_cost: Decimal,
        incoming_cost: Decimal,
        threshold_pct: Decimal,
    ) -> CostDeviation | None:
        """
        Relative difference between the incoming and the current cost.

        Returns None unless both costs are positive.
        """
        if current_cost <= ZERO or incoming_cost <= ZERO:
            return None
        deviation = round_margin(
            abs(incoming_cost - current_cost) / current_cost * HUNDRED,
            self.margin_decimal_places,
        )
        return CostDeviation(
            current_cost=current_cost,
            incoming_cost=incoming_cost,
            deviation_pct=deviation,
            threshold_pct=threshold_pct,
        )
