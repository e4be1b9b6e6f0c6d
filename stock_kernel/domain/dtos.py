"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable values that cross the service boundary: movement
    inputs (CostInputs, SaleFact, MovementRequest), read models
    (VariantState, MovementRecord, AuditTraceEntry) and the write result
    (VariantSnapshot).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters called only from services and selectors.

Invariants enforced:
    - All DTOs are frozen; collections are tuples.
    - Amounts are Decimal, never float.

Data flow:
    MovementRequest -> (validator, averaging, pricing) -> StockMovement row
    -> VariantSnapshot
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from stock_kernel.models.audit_event import AuditEvent as AuditEventModel
    from stock_kernel.models.stock_movement import StockMovement as StockMovementModel
    from stock_kernel.models.variant import Variant as VariantModel


class MovementType(str, Enum):
    """
    Kinds of stock movement.

    Contract:
        ENTRY and POSITIVE_ADJUSTMENT add stock; EXIT, NEGATIVE_ADJUSTMENT
        and SALE remove it.  Only ENTRY carries cost inputs and moves the
        weighted-average cost.
    """

    ENTRY = "entry"
    EXIT = "exit"
    POSITIVE_ADJUSTMENT = "positive_adjustment"
    NEGATIVE_ADJUSTMENT = "negative_adjustment"
    SALE = "sale"

    @property
    def sign(self) -> int:
        """+1 for stock coming in, -1 for stock going out."""
        if self in (MovementType.ENTRY, MovementType.POSITIVE_ADJUSTMENT):
            return 1
        return -1

    @property
    def is_entry(self) -> bool:
        return self is MovementType.ENTRY

    @property
    def is_outgoing(self) -> bool:
        return self.sign < 0


class MovementState(str, Enum):
    """
    Lifecycle of a movement request.

    DRAFT -> VALIDATED -> PERSISTED.  A request that fails validation stays
    DRAFT and is never persisted.
    """

    DRAFT = "draft"
    VALIDATED = "validated"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class CostInputs:
    """Invoice cost inputs of an entry movement."""

    unit_cost_invoice: Decimal | None
    additional_costs: Decimal = Decimal("0")


@dataclass(frozen=True)
class SaleFact:
    """What the order subsystem knows about a sale at the time it happens."""

    order_id: UUID
    unit_sale_price: Decimal
    quantity: int


@dataclass(frozen=True)
class CollaboratorRef:
    """A resolved collaborator, as returned by a CollaboratorDirectory."""

    id: UUID
    name: str
    is_active: bool


@dataclass(frozen=True)
class MovementRequest:
    """
    A stock movement as submitted by a caller, before validation.

    Entry-only extras: invoice_number, supplier, barcode (replaces the
    variant's barcode when given), update_price (apply the suggested
    price derived from the entry's real unit cost and ``margin_pct``).
    """

    variant_id: UUID
    movement_type: MovementType
    quantity: Any
    responsible_id: UUID | None
    cost_inputs: CostInputs | None = None
    reason: str | None = None
    occurred_at: datetime | None = None
    invoice_number: str | None = None
    supplier: str | None = None
    source_document: str | None = None
    barcode: str | None = None
    update_price: bool = False
    margin_pct: Decimal | None = None


@dataclass(frozen=True)
class VariantState:
    """Current state of a variant, for display and pricing screens."""

    variant_id: UUID
    sku: str
    description: str
    category: str | None
    subcategory: str | None
    barcode: str | None
    quantity: int
    average_cost: Decimal
    sale_price: Decimal | None
    margin_pct: Decimal | None
    min_stock: int
    version: int

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    @classmethod
    def from_model(cls, model: VariantModel) -> VariantState:
        return cls(
            variant_id=model.id,
            sku=model.sku,
            description=model.description,
            category=model.category,
            subcategory=model.subcategory,
            barcode=model.barcode,
            quantity=model.quantity,
            average_cost=model.average_cost,
            sale_price=model.sale_price,
            margin_pct=model.margin_pct,
            min_stock=model.min_stock,
            version=model.version,
        )


@dataclass(frozen=True)
class VariantSnapshot:
    """
    The variant's stock position right after a movement was appended.

    warnings carries non-fatal findings (e.g. "cost_deviation",
    "undefined_costing") for the caller to surface.
    """

    variant_id: UUID
    movement_id: UUID
    quantity: int
    average_cost: Decimal
    version: int
    sale_price: Decimal | None = None
    margin_pct: Decimal | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MovementRecord:
    """One row of a variant's movement history."""

    movement_id: UUID
    variant_id: UUID
    movement_type: MovementType
    quantity: int
    unit_cost_invoice: Decimal | None
    additional_costs: Decimal
    real_unit_cost: Decimal
    resulting_quantity: int
    resulting_average_cost: Decimal
    variant_version: int
    responsible_id: UUID
    occurred_at: datetime
    recorded_at: datetime
    reason: str | None = None
    invoice_number: str | None = None
    supplier: str | None = None
    source_document: str | None = None

    @property
    def signed_quantity(self) -> int:
        return self.movement_type.sign * self.quantity

    @classmethod
    def from_model(cls, model: StockMovementModel) -> MovementRecord:
        return cls(
            movement_id=model.id,
            variant_id=model.variant_id,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            unit_cost_invoice=model.unit_cost_invoice,
            additional_costs=model.additional_costs,
            real_unit_cost=model.real_unit_cost,
            resulting_quantity=model.resulting_quantity,
            resulting_average_cost=model.resulting_average_cost,
            variant_version=model.variant_version,
            responsible_id=model.responsible_id,
            occurred_at=model.occurred_at,
            recorded_at=model.recorded_at,
            reason=model.reason,
            invoice_number=model.invoice_number,
            supplier=model.supplier,
            source_document=model.source_document,
        )


@dataclass(frozen=True)
class AuditTraceEntry:
    """One audit event as returned by AuditorService.get_trace()."""

    seq: int
    action: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    occurred_at: datetime
    before: dict | None
    after: dict | None
    hash: str

    @classmethod
    def from_model(cls, model: AuditEventModel) -> AuditTraceEntry:
        payload = model.payload or {}
        return cls(
            seq=model.seq,
            action=model.action.value,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            actor_id=model.actor_id,
            occurred_at=model.occurred_at,
            before=payload.get("before"),
            after=payload.get("after"),
            hash=model.hash,
        )
