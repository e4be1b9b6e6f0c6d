"""
stock_engines.movement_validator -- Preconditions for a stock movement.

Responsibility:
    Turn a caller's MovementRequest (DRAFT) into a ValidatedMovement
    (VALIDATED), or reject it with a ValidationError naming the offending
    field.  Only VALIDATED movements are accepted by the stock ledger,
    which moves them to PERSISTED.

Architecture position:
    Engines -- pure, zero I/O.  The responsible collaborator and the
    variant's current quantity are resolved by the caller and passed in.

Invariants enforced:
    - quantity is a positive integer (bool is not an integer here).
    - ENTRY requires unit_cost_invoice present and >= 0, and
      additional_costs >= 0.
    - Every other type requires a non-blank reason.
    - The responsible party resolves to an active collaborator.
    - An outgoing movement may not take stock below zero unless
      allow_negative_stock is set.

Failure modes:
    - ValidationError(field, reason).  Nothing has been written when it is
      raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from stock_kernel.db.types import ZERO, to_decimal
from stock_kernel.domain.dtos import (
    CollaboratorRef,
    MovementRequest,
    MovementState,
    MovementType,
)
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.movement_validator")


@dataclass(frozen=True)
class ValidatedMovement:
    """A movement that passed every precondition, with normalized inputs."""

    variant_id: UUID
    movement_type: MovementType
    quantity: int
    responsible: CollaboratorRef
    unit_cost_invoice: Decimal | None
    additional_costs: Decimal
    reason: str | None
    occurred_at: datetime | None
    invoice_number: str | None
    supplier: str | None
    source_document: str | None
    barcode: str | None
    update_price: bool
    margin_pct: Decimal | None
    state: MovementState = MovementState.VALIDATED


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    stripped = text.strip()
    return stripped or None


class MovementValidator:
    """Pure validator for movement requests."""

    def __init__(self, allow_negative_stock: bool = False):
        self.allow_negative_stock = allow_negative_stock

    def validate(
        self,
        request: MovementRequest,
        current_quantity: int,
        responsible: CollaboratorRef | None,
    ) -> ValidatedMovement:
        """
        Check every precondition for ``request``.

        Args:
            request: The caller's movement (DRAFT).
            current_quantity: The variant's on-hand quantity as read by the
                caller in the same attempt.
            responsible: The directory's answer for request.responsible_id.

        Returns:
            ValidatedMovement in state VALIDATED.

        Raises:
            ValidationError: on the first failed precondition.
        """
        try:
            return self._validate(request, current_quantity, responsible)
        except ValidationError as exc:
            logger.info(
                "movement_validation_failed",
                extra={
                    "variant_id": str(request.variant_id),
                    "movement_type": getattr(request.movement_type, "value", request.movement_type),
                    "field": exc.field,
                    "reason": exc.reason,
                },
            )
            raise

    def _validate(
        self,
        request: MovementRequest,
        current_quantity: int,
        responsible: CollaboratorRef | None,
    ) -> ValidatedMovement:
        if not isinstance(request.movement_type, MovementType):
            try:
                movement_type = MovementType(request.movement_type)
            except ValueError:
                raise ValidationError(
                    "movement_type", f"unknown movement type {request.movement_type!r}"
                ) from None
        else:
            movement_type = request.movement_type

        quantity = request.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity", f"must be a whole number, got {quantity!r}")
        if quantity <= 0:
            raise ValidationError("quantity", f"must be positive, got {quantity}")

        if request.responsible_id is None:
            raise ValidationError("responsible_id", "a responsible collaborator is required")
        if responsible is None:
            raise ValidationError(
                "responsible_id", f"collaborator {request.responsible_id} not found"
            )
        if not responsible.is_active:
            raise ValidationError(
                "responsible_id", f"collaborator {responsible.name} is not active"
            )

        unit_cost_invoice: Decimal | None = None
        additional_costs = ZERO
        reason = _clean(request.reason)

        if movement_type.is_entry:
            cost_inputs = request.cost_inputs
            if cost_inputs is None or cost_inputs.unit_cost_invoice is None:
                raise ValidationError("unit_cost_invoice", "invoice unit cost is required for an entry")
            unit_cost_invoice = self._amount("unit_cost_invoice", cost_inputs.unit_cost_invoice)
            additional_costs = self._amount("additional_costs", cost_inputs.additional_costs, ZERO)
        elif reason is None:
            raise ValidationError("reason", f"a reason is required for {movement_type.value}")

        margin_pct = None
        if request.margin_pct is not None:
            margin_pct = self._decimal("margin_pct", request.margin_pct)

        if movement_type.is_outgoing and not self.allow_negative_stock:
            if current_quantity - quantity < 0:
                raise ValidationError(
                    "quantity",
                    f"insufficient stock: {current_quantity} on hand, {quantity} requested",
                )

        return ValidatedMovement(
            variant_id=request.variant_id,
            movement_type=movement_type,
            quantity=quantity,
            responsible=responsible,
            unit_cost_invoice=unit_cost_invoice,
            additional_costs=additional_costs,
            reason=reason,
            occurred_at=request.occurred_at,
            invoice_number=_clean(request.invoice_number),
            supplier=_clean(request.supplier),
            source_document=_clean(request.source_document),
            barcode=_clean(request.barcode),
            update_price=bool(request.update_price) and movement_type.is_entry,
            margin_pct=margin_pct,
        )

    def _decimal(self, field: str, value, default: Decimal | None = None) -> Decimal:
        try:
            result = to_decimal(value, default)
        except (TypeError, InvalidOperation):
            raise ValidationError(field, f"not a valid amount: {value!r}") from None
        if result is None or not result.is_finite():
            raise ValidationError(field, f"not a valid amount: {value!r}")
        return result

    def _amount(self, field: str, value, default: Decimal | None = None) -> Decimal:
        amount = self._decimal(field, value, default)
        if amount < ZERO:
            raise ValidationError(field, f"cannot be negative ({amount})")
        return amount
