"""
stock_engines.valuation -- Current stock valued at cost and at sale price.

Responsibility:
    Group on-hand variants by category and subcategory and value them at
    their current average cost and current sale price.

Architecture position:
    Engines -- pure, zero I/O.  Fed by ReportingService from
    VariantSelector.in_stock().

Invariants enforced:
    - Variants with quantity <= 0 are skipped.
    - A variant without a sale price contributes 0 sale value.
    - potential_profit = sale_value - cost_value; margin_pct =
      potential_profit / sale_value * 100, 0 when sale_value is 0.

Unlike profitability reporting this view is about *today*, so it reads
current costs on purpose.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.db.types import (
    HUNDRED,
    MARGIN_DECIMAL_PLACES,
    PRICE_DECIMAL_PLACES,
    ZERO,
    round_margin,
    round_price,
)
from stock_kernel.domain.dtos import VariantState


@dataclass(frozen=True)
class ValuationLine:
    sku: str
    description: str
    quantity: int
    unit_cost: Decimal
    unit_price: Decimal | None
    cost_value: Decimal
    sale_value: Decimal


@dataclass(frozen=True)
class ValuationGroup:
    category: str | None
    subcategory: str | None
    lines: tuple[ValuationLine, ...]
    quantity: int
    cost_value: Decimal
    sale_value: Decimal
    potential_profit: Decimal
    margin_pct: Decimal


@dataclass(frozen=True)
class StockValuation:
    groups: tuple[ValuationGroup, ...]
    quantity: int
    cost_value: Decimal
    sale_value: Decimal
    potential_profit: Decimal
    margin_pct: Decimal


class StockValuationEngine:
    def __init__(
        self,
        price_decimal_places: int = PRICE_DECIMAL_PLACES,
        margin_decimal_places: int = MARGIN_DECIMAL_PLACES,
    ):
        self.price_decimal_places = price_decimal_places
        self.margin_decimal_places = margin_decimal_places

    def _margin(self, profit: Decimal, sale_value: Decimal) -> Decimal:
        if sale_value == ZERO:
            return round_margin(ZERO, self.margin_decimal_places)
        return round_margin(profit / sale_value * HUNDRED, self.margin_decimal_places)

    @traced_engine("valuation", "1.0", fingerprint_fields=("variants",))
    def value(self, *, variants: tuple[VariantState, ...]) -> StockValuation:
        buckets: dict[tuple[str | None, str | None], list[ValuationLine]] = {}
        for variant in variants:
            if variant.quantity <= 0:
                continue
            price = variant.sale_price if variant.sale_price is not None else ZERO
            line = ValuationLine(
                sku=variant.sku,
                description=variant.description,
                quantity=variant.quantity,
                unit_cost=variant.average_cost,
                unit_price=variant.sale_price,
                cost_value=round_price(variant.average_cost * variant.quantity, self.price_decimal_places),
                sale_value=round_price(price * variant.quantity, self.price_decimal_places),
            )
            buckets.setdefault((variant.category, variant.subcategory), []).append(line)

        groups = []
        for (category, subcategory), lines in sorted(
            buckets.items(),
            key=lambda kv: ((kv[0][0] or ""), (kv[0][1] or "")),
        ):
            cost_value = sum((line.cost_value for line in lines), ZERO)
            sale_value = sum((line.sale_value for line in lines), ZERO)
            groups.append(
                ValuationGroup(
                    category=category,
                    subcategory=subcategory,
                    lines=tuple(lines),
                    quantity=sum(line.quantity for line in lines),
                    cost_value=cost_value,
                    sale_value=sale_value,
                    potential_profit=sale_value - cost_value,
                    margin_pct=self._margin(sale_value - cost_value, sale_value),
                )
            )

        cost_total = sum((g.cost_value for g in groups), ZERO)
        sale_total = sum((g.sale_value for g in groups), ZERO)
        return StockValuation(
            groups=tuple(groups),
            quantity=sum(g.quantity for g in groups),
            cost_value=cost_total,
            sale_value=sale_total,
            potential_profit=sale_total - cost_total,
            margin_pct=self._margin(sale_total - cost_total, sale_total),
        )
