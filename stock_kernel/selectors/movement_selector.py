"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the stock ledger: a variant's
    movement history, its last entry cost, and the flattened sale and
    movement rows consumed by the reporting engines.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - History is ordered most recent first (occurred_at, then
      variant_version) and returned as an immutable tuple.
    - Sale rows carry the SaleLinkage snapshot when one exists.  The
      variant's current average_cost is never read for reporting.

Audit relevance:
    Profitability reports derive entirely from movement rows and their
    linkages, so a report run today for last month matches the one run
    last month.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import MovementRecord, MovementType
from stock_kernel.models.collaborator import Collaborator
from stock_kernel.models.sale_linkage import SaleLinkage
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.models.variant import Variant
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class SaleMovementRow:
    """One SALE movement joined with its variant labels and linkage."""

    movement_id: UUID
    variant_id: UUID
    sku: str
    category: str | None
    subcategory: str | None
    occurred_at: datetime
    quantity: int
    movement_unit_cost: Decimal
    has_linkage: bool
    order_id: UUID | None = None
    unit_sale_price: Decimal | None = None
    unit_cost_basis: Decimal | None = None


@dataclass(frozen=True)
class MovementReportRow:
    """One movement of any type with the labels a movement report shows."""

    movement_id: UUID
    variant_id: UUID
    sku: str
    description: str
    category: str | None
    subcategory: str | None
    movement_type: MovementType
    quantity: int
    real_unit_cost: Decimal
    occurred_at: datetime
    reason: str | None
    invoice_number: str | None
    supplier: str | None
    source_document: str | None
    responsible_name: str | None
    order_id: UUID | None
    unit_sale_price: Decimal | None
    unit_cost_basis: Decimal | None


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


class MovementSelector(BaseSelector[StockMovement]):
    """Selector for stock movements."""

    def history(self, variant_id: UUID, limit: int | None = None) -> tuple[MovementRecord, ...]:
        """Movements of one variant, most recent first."""
        query = (
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.occurred_at.desc(), StockMovement.variant_version.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        movements = self.session.execute(query).scalars().all()
        return tuple(MovementRecord.from_model(m) for m in movements)

    def last_entry(self, variant_id: UUID) -> MovementRecord | None:
        """The most recent ENTRY movement of a variant, if any."""
        movement = self.session.execute(
            select(StockMovement)
            .where(
                StockMovement.variant_id == variant_id,
                StockMovement.movement_type == MovementType.ENTRY,
            )
            .order_by(StockMovement.occurred_at.desc(), StockMovement.variant_version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return MovementRecord.from_model(movement) if movement else None

    def _apply_window(self, query, date_from: date | None, date_to: date | None):
        # date_to is inclusive: the whole day counts
        if date_from is not None:
            query = query.where(StockMovement.occurred_at >= _day_start(date_from))
        if date_to is not None:
            query = query.where(StockMovement.occurred_at < _day_start(date_to + timedelta(days=1)))
        return query

    def sale_rows(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> tuple[SaleMovementRow, ...]:
        """SALE movements in the window, oldest first, with their linkage."""
        query = (
            select(StockMovement, Variant, SaleLinkage)
            .join(Variant, Variant.id == StockMovement.variant_id)
            .outerjoin(SaleLinkage, SaleLinkage.movement_id == StockMovement.id)
            .where(StockMovement.movement_type == MovementType.SALE)
        )
        query = self._apply_window(query, date_from, date_to)
        if category is not None:
            query = query.where(Variant.category == category)
        if subcategory is not None:
            query = query.where(Variant.subcategory == subcategory)
        query = query.order_by(StockMovement.occurred_at, StockMovement.variant_version)

        rows = []
        for movement, variant, linkage in self.session.execute(query).all():
            rows.append(
                SaleMovementRow(
                    movement_id=movement.id,
                    variant_id=variant.id,
                    sku=variant.sku,
                    category=variant.category,
                    subcategory=variant.subcategory,
                    occurred_at=movement.occurred_at,
                    quantity=movement.quantity,
                    movement_unit_cost=movement.real_unit_cost,
                    has_linkage=linkage is not None,
                    order_id=linkage.order_id if linkage else None,
                    unit_sale_price=linkage.unit_sale_price if linkage else None,
                    unit_cost_basis=linkage.unit_cost_basis if linkage else None,
                )
            )
        return tuple(rows)

    def report_rows(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        movement_types: tuple[MovementType, ...] | None = None,
        category: str | None = None,
        variant_id: UUID | None = None,
    ) -> tuple[MovementReportRow, ...]:
        """All movements in the window, most recent first, for the movement report."""
        query = (
            select(StockMovement, Variant, SaleLinkage, Collaborator.name)
            .join(Variant, Variant.id == StockMovement.variant_id)
            .outerjoin(SaleLinkage, SaleLinkage.movement_id == StockMovement.id)
            .outerjoin(Collaborator, Collaborator.id == StockMovement.responsible_id)
        )
        query = self._apply_window(query, date_from, date_to)
        if movement_types:
            query = query.where(StockMovement.movement_type.in_(movement_types))
        if category is not None:
            query = query.where(Variant.category == category)
        if variant_id is not None:
            query = query.where(StockMovement.variant_id == variant_id)
        query = query.order_by(StockMovement.occurred_at.desc(), StockMovement.variant_version.desc())

        return tuple(
            MovementReportRow(
                movement_id=movement.id,
                variant_id=variant.id,
                sku=variant.sku,
                description=variant.description,
                category=variant.category,
                subcategory=variant.subcategory,
                movement_type=movement.movement_type,
                quantity=movement.quantity,
                real_unit_cost=movement.real_unit_cost,
                occurred_at=movement.occurred_at,
                reason=movement.reason,
                invoice_number=movement.invoice_number,
                supplier=movement.supplier,
                source_document=movement.source_document,
                responsible_name=responsible_name,
                order_id=linkage.order_id if linkage else None,
                unit_sale_price=linkage.unit_sale_price if linkage else None,
                unit_cost_basis=linkage.unit_cost_basis if linkage else None,
            )
            for movement, variant, linkage, responsible_name in self.session.execute(query).all()
        )
