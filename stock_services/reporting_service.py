"""
ReportingService -- read-side reports over the stock ledger.

Responsibility:
    Loads rows through the selectors and hands them to the pure report
    engines: profitability (realized margins of sales), the movement
    report and the current stock valuation.

Architecture position:
    Services -- imperative shell, read-only.  Never writes, never commits.

Invariants enforced:
    - Profitability reads only movement rows and their SaleLinkage
      snapshots.  A variant's current average cost never enters a
      profitability figure, so reports over past periods are stable.
    - Sale movements without any linkage are listed as unpriced and left
      out of the sums.
    - date_to is inclusive.

Failure modes:
    - ValidationError when date_from is after date_to.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from stock_config.schema import CostingSettings
from stock_engines.movement_report import MovementReport, MovementReportEngine
from stock_engines.profitability import (
    DEFAULT_GROUP_BY,
    GroupBy,
    ProfitabilityEngine,
    ProfitabilityReport,
    SaleLine,
)
from stock_engines.valuation import StockValuation, StockValuationEngine
from stock_kernel.domain.dtos import MovementType
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.variant_selector import VariantSelector

logger = get_logger("services.reporting")


@dataclass(frozen=True)
class ProfitabilityFilters:
    date_from: date | None = None
    date_to: date | None = None
    category: str | None = None
    subcategory: str | None = None
    group_by: tuple[GroupBy, ...] = DEFAULT_GROUP_BY


@dataclass(frozen=True)
class MovementReportFilters:
    date_from: date | None = None
    date_to: date | None = None
    movement_types: tuple[MovementType, ...] | None = None
    category: str | None = None
    variant_id: UUID | None = None


def _check_window(date_from: date | None, date_to: date | None) -> None:
    if date_from is not None and date_to is not None and date_from > date_to:
        raise ValidationError("date_to", f"{date_to} is before {date_from}")


class ReportingService:
    """Stock reports."""

    def __init__(self, session: Session, costing: CostingSettings | None = None):
        costing = costing or CostingSettings()
        self._movements = MovementSelector(session)
        self._variants = VariantSelector(session)
        self._profitability = ProfitabilityEngine(
            costing.price_decimal_places, costing.margin_decimal_places,
        )
        self._movement_report = MovementReportEngine(
            costing.price_decimal_places, costing.margin_decimal_places,
        )
        self._valuation = StockValuationEngine(
            costing.price_decimal_places, costing.margin_decimal_places,
        )

    def get_profitability_report(
        self,
        filters: ProfitabilityFilters | None = None,
    ) -> ProfitabilityReport:
        """
        Realized profit and margin of the sales in the window.

        Each sale uses its frozen cost basis; a linkage without one falls
        back to the movement's cost at the time.
        """
        filters = filters or ProfitabilityFilters()
        _check_window(filters.date_from, filters.date_to)
        if not filters.group_by:
            raise ValidationError("group_by", "at least one grouping is required")

        rows = self._movements.sale_rows(
            date_from=filters.date_from,
            date_to=filters.date_to,
            category=filters.category,
            subcategory=filters.subcategory,
        )

        lines = []
        unpriced = []
        for row in rows:
            if not row.has_linkage:
                unpriced.append(row.movement_id)
                continue
            lines.append(
                SaleLine(
                    movement_id=row.movement_id,
                    variant_id=row.variant_id,
                    sku=row.sku,
                    category=row.category,
                    subcategory=row.subcategory,
                    occurred_at=row.occurred_at,
                    quantity=row.quantity,
                    unit_sale_price=row.unit_sale_price,
                    unit_cost_basis=row.unit_cost_basis,
                    movement_unit_cost=row.movement_unit_cost,
                )
            )

        report = self._profitability.build_report(
            lines=tuple(lines),
            group_by=tuple(filters.group_by),
            unpriced_movement_ids=tuple(unpriced),
        )
        logger.info(
            "profitability_report_built",
            extra={
                "row_count": len(report.rows),
                "group_count": len(report.groups),
                "unpriced_count": len(report.unpriced_movement_ids),
            },
        )
        return report

    def get_movement_report(
        self,
        filters: MovementReportFilters | None = None,
    ) -> MovementReport:
        """Movements in the window, most recent first, with a summary."""
        filters = filters or MovementReportFilters()
        _check_window(filters.date_from, filters.date_to)
        rows = self._movements.report_rows(
            date_from=filters.date_from,
            date_to=filters.date_to,
            movement_types=filters.movement_types,
            category=filters.category,
            variant_id=filters.variant_id,
        )
        return self._movement_report.build(rows=rows)

    def get_stock_valuation(
        self,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> StockValuation:
        """On-hand stock valued at current average cost and sale price."""
        variants = self._variants.in_stock(category=category, subcategory=subcategory)
        return self._valuation.value(variants=variants)
