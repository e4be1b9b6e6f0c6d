"""
StockLedgerService -- the single writer of a variant's stock position.

Responsibility:
    Appends a validated movement to the ``stock_movements`` ledger and
    moves the variant to its new stock position in the same transaction,
    guarded by the variant's optimistic version.  Sale movements also get
    their SaleLinkage with the cost basis frozen at sale time.

Architecture position:
    Services -- imperative shell.  Called by InventoryService with a
    PreparedMovement computed by the pure engines.  Flush-only: the
    facade owns commit and rollback.

Invariants enforced:
    - The variant row is written with
      ``UPDATE variants ... WHERE id = :id AND version = :expected``.
      Zero rows updated means another writer got there first:
      StaleStateError, nothing is flushed for this movement.
    - The UPDATE runs before the movement INSERT, so a lost race is
      reported as stale state rather than as a unique-version collision.
    - Each movement takes its variant to exactly version + 1.
    - A movement that updates the price also requires the sale price and
      margin read at prepare time to be unchanged, so a manual price
      override committed in between is reported as stale state.
    - Only VALIDATED movements are accepted; the snapshot returned
      describes the PERSISTED movement.

Failure modes:
    - ValidationError("state") for a movement that was not validated.
    - StaleStateError when the expected version no longer matches.

Audit relevance:
    Every append records a STOCK_MOVEMENT_RECORDED audit event on the
    variant with its position before and after the movement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stock_engines.averaging import StockPosition
from stock_engines.movement_validator import ValidatedMovement
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    MovementRecord,
    MovementState,
    SaleFact,
    VariantSnapshot,
)
from stock_kernel.exceptions import StaleStateError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.sale_linkage import SaleLinkage
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.models.variant import Variant
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.auditor_service import AuditorService

logger = get_logger("services.stock_ledger")

VARIANT_ENTITY = "Variant"


def _unchanged(column, value):
    return column.is_(None) if value is None else column == value


@dataclass(frozen=True)
class PreparedMovement:
    """
    A validated movement with everything the ledger needs to write it.

    ``before`` is the position read when the movement was prepared and
    ``expected_version`` the version it was read at.  ``sale_price`` and
    ``margin_pct`` are applied to the variant only when ``apply_pricing``
    is set.
    """

    movement: ValidatedMovement
    expected_version: int
    before: StockPosition
    after: StockPosition
    real_unit_cost: Decimal
    occurred_at: datetime
    sale: SaleFact | None = None
    unit_cost_basis: Decimal | None = None
    previous_sale_price: Decimal | None = None
    previous_margin_pct: Decimal | None = None
    apply_pricing: bool = False
    sale_price: Decimal | None = None
    margin_pct: Decimal | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def variant_id(self) -> UUID:
        return self.movement.variant_id


class StockLedgerService:
    """
    Append-only stock ledger.

    Non-goals:
        - Does NOT validate business preconditions (MovementValidator).
        - Does NOT compute costs (CostAveragingEngine).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._movements = MovementSelector(session)

    def append(self, movement: PreparedMovement) -> VariantSnapshot:
        """
        Persist ``movement`` and move its variant to ``movement.after``.

        The version check uses movement.expected_version, the version
        ``before`` and ``after`` were computed from.

        Preconditions:
            movement.movement.state is VALIDATED.

        Postconditions:
            One StockMovement row (plus a SaleLinkage for sales) and one
            audit event are flushed; the variant is at
            movement.expected_version + 1.

        Raises:
            ValidationError: the movement was not validated.
            StaleStateError: the variant is no longer at expected_version.
        """
        validated = movement.movement
        if validated.state is not MovementState.VALIDATED:
            raise ValidationError("state", f"expected validated movement, got {validated.state.value}")

        expected_version = movement.expected_version
        new_version = expected_version + 1
        values = {
            "quantity": movement.after.quantity,
            "average_cost": movement.after.average_cost,
            "version": new_version,
            "updated_by_id": validated.responsible.id,
        }
        if movement.apply_pricing:
            values["sale_price"] = movement.sale_price
            values["margin_pct"] = movement.margin_pct
        if validated.barcode is not None:
            values["barcode"] = validated.barcode

        guards = [Variant.id == validated.variant_id, Variant.version == expected_version]
        if movement.apply_pricing:
            guards.append(_unchanged(Variant.sale_price, movement.previous_sale_price))
            guards.append(_unchanged(Variant.margin_pct, movement.previous_margin_pct))

        with LogContext.bind(variant_id=str(validated.variant_id)):
            result = self._session.execute(
                update(Variant)
                .where(*guards)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "stale_state_detected",
                    extra={
                        "expected_version": expected_version,
                        "movement_type": validated.movement_type.value,
                    },
                )
                raise StaleStateError(validated.variant_id, expected_version)

            recorded_at = self._clock.now()
            row = StockMovement(
                variant_id=validated.variant_id,
                movement_type=validated.movement_type,
                quantity=validated.quantity,
                unit_cost_invoice=validated.unit_cost_invoice,
                additional_costs=validated.additional_costs,
                real_unit_cost=movement.real_unit_cost,
                resulting_quantity=movement.after.quantity,
                resulting_average_cost=movement.after.average_cost,
                variant_version=new_version,
                responsible_id=validated.responsible.id,
                occurred_at=movement.occurred_at,
                recorded_at=recorded_at,
                reason=validated.reason,
                invoice_number=validated.invoice_number,
                supplier=validated.supplier,
                source_document=validated.source_document,
            )
            self._session.add(row)
            self._session.flush()

            if movement.sale is not None:
                self._session.add(
                    SaleLinkage(
                        movement_id=row.id,
                        order_id=movement.sale.order_id,
                        quantity=validated.quantity,
                        unit_sale_price=movement.sale.unit_sale_price,
                        unit_cost_basis=movement.unit_cost_basis,
                        created_at=recorded_at,
                    )
                )
                self._session.flush()

            sale_price = movement.sale_price if movement.apply_pricing else movement.previous_sale_price
            margin_pct = movement.margin_pct if movement.apply_pricing else movement.previous_margin_pct
            self._auditor.record_change(
                actor_id=validated.responsible.id,
                entity_type=VARIANT_ENTITY,
                entity_id=validated.variant_id,
                action=AuditAction.STOCK_MOVEMENT_RECORDED,
                before={
                    "quantity": movement.before.quantity,
                    "average_cost": movement.before.average_cost,
                    "version": expected_version,
                    "sale_price": movement.previous_sale_price,
                    "margin_pct": movement.previous_margin_pct,
                },
                after={
                    "movement_id": row.id,
                    "movement_type": validated.movement_type,
                    "movement_quantity": validated.quantity,
                    "real_unit_cost": movement.real_unit_cost,
                    "quantity": movement.after.quantity,
                    "average_cost": movement.after.average_cost,
                    "version": new_version,
                    "sale_price": sale_price,
                    "margin_pct": margin_pct,
                },
            )

            # The bulk UPDATE bypassed the identity map.
            self._session.execute(
                select(Variant)
                .where(Variant.id == validated.variant_id)
                .execution_options(populate_existing=True)
            ).scalar_one()

            logger.info(
                "stock_movement_persisted",
                extra={
                    "movement_id": str(row.id),
                    "movement_type": validated.movement_type.value,
                    "quantity": validated.quantity,
                    "resulting_quantity": movement.after.quantity,
                    "resulting_average_cost": str(movement.after.average_cost),
                    "version": new_version,
                    "state": MovementState.PERSISTED.value,
                },
            )

        return VariantSnapshot(
            variant_id=validated.variant_id,
            movement_id=row.id,
            quantity=movement.after.quantity,
            average_cost=movement.after.average_cost,
            version=new_version,
            sale_price=sale_price,
            margin_pct=margin_pct,
            warnings=movement.warnings,
        )

    def history(self, variant_id: UUID, limit: int | None = None) -> tuple[MovementRecord, ...]:
        """Movements of one variant, most recent first."""
        if limit is not None and limit < 0:
            raise ValidationError("limit", f"must not be negative, got {limit}")
        return self._movements.history(variant_id, limit)
