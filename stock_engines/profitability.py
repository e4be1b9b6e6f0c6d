"""
stock_engines.profitability -- Realized profit and margin from sale movements.

Responsibility:
    Turn sale lines (a SALE movement plus its frozen linkage) into
    per-sale profit rows, then aggregate them by category, subcategory
    and/or time window.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Fed by
    ReportingService from MovementSelector.sale_rows().

Invariants enforced:
    - profit = unit_sale_price * qty - unit_cost_basis * qty, where the cost
      basis is the linkage snapshot when present and otherwise the
      movement's cost at the time (a known precision gap: that cost is the
      average at the moment of the sale, not a lot cost).
    - margin_pct = profit / sale_value * 100, and 0 when sale_value is 0.
    - Groups and totals are sums of the row values.  Nothing here ever sees
      a variant's current cost.

Audit relevance:
    Each row records which cost source it used ("snapshot" or "movement"),
    so a reviewer can see where the fallback applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.db.types import (
    HUNDRED,
    MARGIN_DECIMAL_PLACES,
    PRICE_DECIMAL_PLACES,
    ZERO,
    round_margin,
    round_price,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.profitability")


class GroupBy(str, Enum):
    """Dimensions a profitability report can be grouped by."""

    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    DAY = "day"
    MONTH = "month"


class CostSource(str, Enum):
    SNAPSHOT = "snapshot"
    MOVEMENT = "movement"


DEFAULT_GROUP_BY = (GroupBy.CATEGORY, GroupBy.SUBCATEGORY)


@dataclass(frozen=True)
class SaleLine:
    """Input: one sale movement with its sale facts."""

    movement_id: UUID
    variant_id: UUID
    sku: str
    category: str | None
    subcategory: str | None
    occurred_at: datetime
    quantity: int
    unit_sale_price: Decimal
    unit_cost_basis: Decimal | None
    movement_unit_cost: Decimal


@dataclass(frozen=True)
class ProfitabilityRow:
    movement_id: UUID
    variant_id: UUID
    sku: str
    category: str | None
    subcategory: str | None
    occurred_at: datetime
    quantity: int
    unit_sale_price: Decimal
    unit_cost: Decimal
    cost_source: CostSource
    sale_total: Decimal
    cost_total: Decimal
    profit: Decimal
    margin_pct: Decimal


@dataclass(frozen=True)
class ProfitabilityTotals:
    quantity: int
    cost_total: Decimal
    sale_total: Decimal
    profit: Decimal
    margin_pct: Decimal
    row_count: int


@dataclass(frozen=True)
class ProfitabilityGroup:
    """Totals for one combination of group keys, e.g. ("Tires", "Summer")."""

    key: tuple[str | None, ...]
    totals: ProfitabilityTotals


@dataclass(frozen=True)
class ProfitabilityReport:
    group_by: tuple[GroupBy, ...]
    rows: tuple[ProfitabilityRow, ...]
    groups: tuple[ProfitabilityGroup, ...]
    totals: ProfitabilityTotals
    unpriced_movement_ids: tuple[UUID, ...] = field(default_factory=tuple)


class ProfitabilityEngine:
    """Pure profitability calculator."""

    def __init__(
        self,
        price_decimal_places: int = PRICE_DECIMAL_PLACES,
        margin_decimal_places: int = MARGIN_DECIMAL_PLACES,
    ):
        self.price_decimal_places = price_decimal_places
        self.margin_decimal_places = margin_decimal_places

    def margin(self, profit: Decimal, sale_total: Decimal) -> Decimal:
        if sale_total == ZERO:
            return round_margin(ZERO, self.margin_decimal_places)
        return round_margin(profit / sale_total * HUNDRED, self.margin_decimal_places)

    def row(self, line: SaleLine) -> ProfitabilityRow:
        if line.unit_cost_basis is not None:
            unit_cost, source = line.unit_cost_basis, CostSource.SNAPSHOT
        else:
            unit_cost, source = line.movement_unit_cost, CostSource.MOVEMENT

        sale_total = round_price(line.unit_sale_price * line.quantity, self.price_decimal_places)
        cost_total = round_price(unit_cost * line.quantity, self.price_decimal_places)
        profit = sale_total - cost_total
        return ProfitabilityRow(
            movement_id=line.movement_id,
            variant_id=line.variant_id,
            sku=line.sku,
            category=line.category,
            subcategory=line.subcategory,
            occurred_at=line.occurred_at,
            quantity=line.quantity,
            unit_sale_price=line.unit_sale_price,
            unit_cost=unit_cost,
            cost_source=source,
            sale_total=sale_total,
            cost_total=cost_total,
            profit=profit,
            margin_pct=self.margin(profit, sale_total),
        )

    def _group_key(self, row: ProfitabilityRow, group_by: tuple[GroupBy, ...]) -> tuple:
        key = []
        for dimension in group_by:
            if dimension is GroupBy.CATEGORY:
                key.append(row.category)
            elif dimension is GroupBy.SUBCATEGORY:
                key.append(row.subcategory)
            elif dimension is GroupBy.DAY:
                key.append(row.occurred_at.date().isoformat())
            elif dimension is GroupBy.MONTH:
                key.append(row.occurred_at.strftime("%Y-%m"))
        return tuple(key)

    def totals(self, rows: tuple[ProfitabilityRow, ...] | list[ProfitabilityRow]) -> ProfitabilityTotals:
        quantity = sum((r.quantity for r in rows), 0)
        cost_total = sum((r.cost_total for r in rows), ZERO)
        sale_total = sum((r.sale_total for r in rows), ZERO)
        profit = sum((r.profit for r in rows), ZERO)
        return ProfitabilityTotals(
            quantity=quantity,
            cost_total=cost_total,
            sale_total=sale_total,
            profit=profit,
            margin_pct=self.margin(profit, sale_total),
            row_count=len(rows),
        )

    @traced_engine("profitability", "1.0", fingerprint_fields=("lines", "group_by"))
    def build_report(
        self,
        *,
        lines: tuple[SaleLine, ...],
        group_by: tuple[GroupBy, ...] = DEFAULT_GROUP_BY,
        unpriced_movement_ids: tuple[UUID, ...] = (),
    ) -> ProfitabilityReport:
        """
        Rows, grouped totals and grand totals for ``lines``.

        Groups are ordered by key (None sorts first).  Rows keep input order.
        """
        rows = tuple(self.row(line) for line in lines)

        buckets: dict[tuple, list[ProfitabilityRow]] = {}
        for row in rows:
            buckets.setdefault(self._group_key(row, group_by), []).append(row)

        groups = tuple(
            ProfitabilityGroup(key=key, totals=self.totals(bucket))
            for key, bucket in sorted(
                buckets.items(),
                key=lambda kv: tuple((part is not None, part or "") for part in kv[0]),
            )
        )

        if unpriced_movement_ids:
            logger.warning(
                "profitability_unpriced_sales",
                extra={"count": len(unpriced_movement_ids)},
            )

        return ProfitabilityReport(
            group_by=group_by,
            rows=rows,
            groups=groups,
            totals=self.totals(rows),
            unpriced_movement_ids=tuple(unpriced_movement_ids),
        )
