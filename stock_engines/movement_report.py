"""
stock_engines.movement_report -- Flat movement report with per-row values.

Responsibility:
    Render ledger rows for a movement report: direction, unit value, total
    cost, a reference number, the counterparty, and sale value / profit /
    margin for sale rows.  Summaries count units in and out, entry cost
    and realized sale profit.

Architecture position:
    Engines -- pure, zero I/O.  Fed by ReportingService from
    MovementSelector.report_rows().

Invariants enforced:
    - Reference: invoice number for entries, order id for sales, source
      document otherwise.
    - Counterparty: supplier for entries, otherwise the responsible
      collaborator.
    - Sale profit uses the linkage cost snapshot, falling back to the
      movement's cost at the time, exactly as profitability reporting does.
      A sale without a linkage has sale value 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
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
from stock_kernel.domain.dtos import MovementType

if TYPE_CHECKING:
    from stock_kernel.selectors.movement_selector import MovementReportRow

DIRECTION_IN = "in"
DIRECTION_OUT = "out"


@dataclass(frozen=True)
class MovementReportLine:
    movement_id: UUID
    occurred_at: datetime
    sku: str
    description: str
    category: str | None
    movement_type: MovementType
    direction: str
    quantity: int
    unit_value: Decimal
    total_cost: Decimal
    reference: str | None
    counterparty: str | None
    reason: str | None
    sale_value: Decimal | None = None
    profit: Decimal | None = None
    margin_pct: Decimal | None = None


@dataclass(frozen=True)
class MovementReportSummary:
    units_in: int
    units_out: int
    entry_cost: Decimal
    sale_value: Decimal
    sale_profit: Decimal
    movement_count: int


@dataclass(frozen=True)
class MovementReport:
    lines: tuple[MovementReportLine, ...]
    summary: MovementReportSummary


class MovementReportEngine:
    def __init__(
        self,
        price_decimal_places: int = PRICE_DECIMAL_PLACES,
        margin_decimal_places: int = MARGIN_DECIMAL_PLACES,
    ):
        self.price_decimal_places = price_decimal_places
        self.margin_decimal_places = margin_decimal_places

    def line(self, row: MovementReportRow) -> MovementReportLine:
        movement_type = MovementType(row.movement_type)
        total_cost = round_price(row.real_unit_cost * row.quantity, self.price_decimal_places)

        if movement_type is MovementType.ENTRY:
            reference = row.invoice_number
            counterparty = row.supplier or row.responsible_name
        elif movement_type is MovementType.SALE and row.order_id is not None:
            reference = str(row.order_id)
            counterparty = row.responsible_name
        else:
            reference = row.source_document
            counterparty = row.responsible_name

        sale_value = profit = margin = None
        if movement_type is MovementType.SALE:
            if row.unit_sale_price is not None:
                sale_value = round_price(row.unit_sale_price * row.quantity, self.price_decimal_places)
            else:
                sale_value = round_price(ZERO, self.price_decimal_places)
            unit_cost = row.unit_cost_basis if row.unit_cost_basis is not None else row.real_unit_cost
            profit = sale_value - round_price(unit_cost * row.quantity, self.price_decimal_places)
            if sale_value == ZERO:
                margin = round_margin(ZERO, self.margin_decimal_places)
            else:
                margin = round_margin(profit / sale_value * HUNDRED, self.margin_decimal_places)

        return MovementReportLine(
            movement_id=row.movement_id,
            occurred_at=row.occurred_at,
            sku=row.sku,
            description=row.description,
            category=row.category,
            movement_type=movement_type,
            direction=DIRECTION_IN if movement_type.sign > 0 else DIRECTION_OUT,
            quantity=row.quantity,
            unit_value=row.real_unit_cost,
            total_cost=total_cost,
            reference=reference,
            counterparty=counterparty,
            reason=row.reason,
            sale_value=sale_value,
            profit=profit,
            margin_pct=margin,
        )

    @traced_engine("movement_report", "1.0", fingerprint_fields=("rows",))
    def build(self, *, rows: tuple[MovementReportRow, ...]) -> MovementReport:
        lines = tuple(self.line(row) for row in rows)
        summary = MovementReportSummary(
            units_in=sum(l.quantity for l in lines if l.direction == DIRECTION_IN),
            units_out=sum(l.quantity for l in lines if l.direction == DIRECTION_OUT),
            entry_cost=sum(
                (l.total_cost for l in lines if l.movement_type is MovementType.ENTRY), ZERO
            ),
            sale_value=sum((l.sale_value for l in lines if l.sale_value is not None), ZERO),
            sale_profit=sum((l.profit for l in lines if l.profit is not None), ZERO),
            movement_count=len(lines),
        )
        return MovementReport(lines=lines, summary=summary)
