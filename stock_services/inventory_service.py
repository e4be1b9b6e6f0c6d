"""
InventoryService -- the stock facade exposed to collaborators.

Responsibility:
    The one entry point other subsystems (order handling, catalog screens,
    purchasing) use to change or read stock.  Drives a movement through
    the write flow:

        VariantSelector.get_state          read position and version
        CollaboratorDirectory.resolve      responsible party
        MovementValidator.validate         DRAFT -> VALIDATED
        CostAveragingEngine.apply          new StockPosition
        PricingCalculator                  deviation warning, price update
        StockLedgerService.append          VALIDATED -> PERSISTED (+ audit)
        commit / rollback

    Also owns the audited catalog edits (registration, price override,
    category reassignment, barcode) and the stock read API.

Architecture position:
    Services -- imperative shell, owns transaction boundaries.  Every
    public write method commits on success and rolls back on failure.

Invariants enforced:
    - A movement that fails validation leaves no trace: nothing is flushed
      and nothing is audited.
    - A StaleStateError from the ledger rolls the attempt back; the
      movement is re-read, re-validated and retried up to
      ``stale_state_retries`` times before the error propagates.
    - A sale's cost basis is the variant's average cost at the moment the
      sale is prepared, frozen into its SaleLinkage.
    - Derived fields are never written here; catalog edits touch only
      catalog columns.

Failure modes:
    - ValidationError: rejected input (field names the offender).
    - VariantNotFoundError: unknown variant id.
    - DuplicateSkuError: registering an existing SKU.
    - StaleStateError: the variant kept changing under the writer.

Audit relevance:
    Registration, price overrides, category reassignment, barcode edits
    and every movement produce one hash-chained audit event each.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_engines.averaging import CostAveragingEngine, StockPosition
from stock_engines.movement_validator import MovementValidator
from stock_engines.pricing import (
    COST_DEVIATION_WARNING,
    MIN_MARGIN_PCT,
    UNDEFINED_COSTING_WARNING,
    EditedField,
    PricingCalculator,
    PricingResult,
)
from stock_kernel.db.types import ZERO, to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    CostInputs,
    MovementRecord,
    MovementRequest,
    MovementType,
    SaleFact,
    VariantSnapshot,
    VariantState,
)
from stock_kernel.exceptions import (
    DuplicateSkuError,
    StaleStateError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.variant import Variant
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.variant_selector import VariantSelector
from stock_kernel.services.auditor_service import AuditorService, AuditTrace
from stock_kernel.services.collaborator_directory import (
    CollaboratorDirectory,
    SqlCollaboratorDirectory,
)
from stock_services.stock_ledger_service import (
    VARIANT_ENTITY,
    PreparedMovement,
    StockLedgerService,
)

logger = get_logger("services.inventory")


def _require_aware(field: str, value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(field, "must be timezone-aware")
    return value


def _optional_amount(field: str, value, minimum: Decimal = ZERO) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = to_decimal(value)
    except (TypeError, InvalidOperation):
        raise ValidationError(field, f"not a valid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(field, f"not a valid amount: {value!r}")
    if amount < minimum:
        raise ValidationError(field, f"must be >= {minimum}, got {amount}")
    return amount


def _label(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class InventoryService:
    """
    Stock facade.

    Contract:
        Public write methods run in their own transaction on ``session``
        and leave it committed or rolled back.  Read methods never write.

    Usage:
        inventory = InventoryService(session, clock=clock, config=config)
        snapshot = inventory.record_movement(
            variant_id, MovementType.ENTRY, 100,
            responsible_id=buyer_id,
            cost_inputs=CostInputs(Decimal("10.00"), Decimal("50.00")),
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: StockConfig | None = None,
        directory: CollaboratorDirectory | None = None,
        ledger: StockLedgerService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or StockConfig()

        costing = self._config.costing
        self._averaging = CostAveragingEngine(costing.cost_decimal_places)
        self._pricing = PricingCalculator(
            costing.price_decimal_places,
            costing.margin_decimal_places,
        )
        self._validator = MovementValidator(
            allow_negative_stock=self._config.stock.allow_negative_stock,
        )
        self._directory = directory or SqlCollaboratorDirectory(
            session, self._config.collaborators.active_statuses,
        )
        self._auditor = AuditorService(session, self._clock)
        self._ledger = ledger or StockLedgerService(session, self._clock, self._auditor)
        self._variants = VariantSelector(session)
        self._movements = MovementSelector(session)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._session.commit()
        except Exception as exc:
            self._session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                },
            )
            raise

    def _load_variant(self, variant_id: UUID) -> Variant:
        variant = self._session.execute(
            select(Variant)
            .where(Variant.id == variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if variant is None:
            raise VariantNotFoundError(variant_id)
        return variant

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register_variant(
        self,
        sku: str,
        description: str,
        created_by_id: UUID,
        category: str | None = None,
        subcategory: str | None = None,
        barcode: str | None = None,
        sale_price: Decimal | None = None,
        margin_pct: Decimal | None = None,
        min_stock: int = 0,
    ) -> VariantState:
        """
        Register a new variant with an empty stock position.

        Opening stock is recorded afterwards as an entry movement.

        Raises:
            ValidationError: blank sku/description, negative price or
                min_stock, margin below -100 %.
            DuplicateSkuError: the SKU is already registered.
        """
        sku = _label(sku)
        description = _label(description)
        if sku is None:
            raise ValidationError("sku", "sku is required")
        if description is None:
            raise ValidationError("description", "description is required")
        if created_by_id is None:
            raise ValidationError("created_by_id", "an actor is required")
        if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
            raise ValidationError("min_stock", f"must be a non-negative whole number, got {min_stock!r}")
        price = _optional_amount("sale_price", sale_price)
        margin = _optional_amount("margin_pct", margin_pct, minimum=MIN_MARGIN_PCT)

        with self._transaction("register_variant"):
            if self._variants.find_by_sku(sku) is not None:
                raise DuplicateSkuError(sku)

            variant = Variant(
                sku=sku,
                description=description,
                category=_label(category),
                subcategory=_label(subcategory),
                barcode=_label(barcode),
                sale_price=price,
                margin_pct=margin,
                min_stock=min_stock,
                created_by_id=created_by_id,
            )
            self._session.add(variant)
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise DuplicateSkuError(sku) from exc

            self._auditor.record_change(
                actor_id=created_by_id,
                entity_type=VARIANT_ENTITY,
                entity_id=variant.id,
                action=AuditAction.VARIANT_REGISTERED,
                before=None,
                after={
                    "sku": sku,
                    "description": description,
                    "category": variant.category,
                    "subcategory": variant.subcategory,
                    "barcode": variant.barcode,
                    "sale_price": price,
                    "margin_pct": margin,
                    "min_stock": min_stock,
                },
            )
            state = VariantState.from_model(variant)

        logger.info("variant_registered", extra={"variant_id": str(state.variant_id), "sku": sku})
        return state

    def set_pricing(
        self,
        variant_id: UUID,
        edited_field: EditedField,
        actor_id: UUID,
        margin_pct: Decimal | None = None,
        sale_price: Decimal | None = None,
    ) -> PricingResult:
        """
        Manually override the margin or the sale price of a variant.

        The other field is recomputed from the variant's current average
        cost.  The write is guarded by the version that cost was read at.
        With no positive cost the result is UNDEFINED_COSTING: the edited
        value is stored and the dependent field is cleared.

        Raises:
            ValidationError: a cost edit (cost is derived from movements),
                or a missing/invalid value.
            StaleStateError: a movement changed the cost after it was read.
                Nothing is written; re-read and retry.
        """
        if edited_field is EditedField.COST:
            raise ValidationError("edited_field", "cost is derived from stock movements")
        if actor_id is None:
            raise ValidationError("actor_id", "an actor is required")
        margin = _optional_amount("margin_pct", margin_pct, minimum=MIN_MARGIN_PCT)
        price = _optional_amount("sale_price", sale_price)

        with self._transaction("set_pricing"), LogContext.bind(variant_id=str(variant_id)):
            variant = self._load_variant(variant_id)
            result = self._pricing.recompute(
                edited_field=edited_field,
                cost=variant.average_cost,
                margin_pct=margin,
                sale_price=price,
            )
            before = {"sale_price": variant.sale_price, "margin_pct": variant.margin_pct}
            written = self._session.execute(
                update(Variant)
                .where(Variant.id == variant.id, Variant.version == variant.version)
                .values(
                    sale_price=result.sale_price,
                    margin_pct=result.margin_pct,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if written.rowcount != 1:
                logger.warning(
                    "stale_state_detected",
                    extra={"expected_version": variant.version, "operation": "set_pricing"},
                )
                raise StaleStateError(variant.id, variant.version)

            self._auditor.record_change(
                actor_id=actor_id,
                entity_type=VARIANT_ENTITY,
                entity_id=variant.id,
                action=AuditAction.PRICE_OVERRIDDEN,
                before=before,
                after={
                    "edited_field": edited_field,
                    "cost": result.cost,
                    "sale_price": result.sale_price,
                    "margin_pct": result.margin_pct,
                    "status": result.status,
                },
            )
        return result

    def reassign_category(
        self,
        variant_id: UUID,
        category: str | None,
        subcategory: str | None,
        actor_id: UUID,
    ) -> VariantState:
        """Move a variant to another category/subcategory (audited)."""
        if actor_id is None:
            raise ValidationError("actor_id", "an actor is required")

        with self._transaction("reassign_category"):
            variant = self._load_variant(variant_id)
            before = {"category": variant.category, "subcategory": variant.subcategory}
            variant.category = _label(category)
            variant.subcategory = _label(subcategory)
            variant.updated_by_id = actor_id
            self._session.flush()

            self._auditor.record_change(
                actor_id=actor_id,
                entity_type=VARIANT_ENTITY,
                entity_id=variant.id,
                action=AuditAction.CATEGORY_REASSIGNED,
                before=before,
                after={"category": variant.category, "subcategory": variant.subcategory},
            )
            state = VariantState.from_model(variant)
        return state

    def set_barcode(self, variant_id: UUID, barcode: str | None, actor_id: UUID) -> VariantState:
        """Replace (or clear) a variant's barcode (audited)."""
        if actor_id is None:
            raise ValidationError("actor_id", "an actor is required")

        with self._transaction("set_barcode"):
            variant = self._load_variant(variant_id)
            before = {"barcode": variant.barcode}
            variant.barcode = _label(barcode)
            variant.updated_by_id = actor_id
            self._session.flush()

            self._auditor.record_change(
                actor_id=actor_id,
                entity_type=VARIANT_ENTITY,
                entity_id=variant.id,
                action=AuditAction.BARCODE_CHANGED,
                before=before,
                after={"barcode": variant.barcode},
            )
            state = VariantState.from_model(variant)
        return state

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def prepare_movement(
        self,
        request: MovementRequest,
        sale: SaleFact | None = None,
    ) -> PreparedMovement:
        """
        Read, validate and compute one movement without writing anything.

        The result carries the version it was computed against; hand it to
        commit_movement() to persist it.

        Raises:
            VariantNotFoundError, ValidationError
        """
        state = self._variants.get_state(request.variant_id)
        responsible = (
            self._directory.resolve(request.responsible_id)
            if request.responsible_id is not None
            else None
        )
        validated = self._validator.validate(request, state.quantity, responsible)

        if sale is not None and validated.movement_type is not MovementType.SALE:
            raise ValidationError("movement_type", "sale facts are only accepted for sales")

        occurred_at = _require_aware(
            "occurred_at", validated.occurred_at or self._clock.now()
        )

        before = StockPosition(quantity=state.quantity, average_cost=state.average_cost)
        if validated.movement_type.is_entry:
            real_unit_cost = self._averaging.real_unit_cost(
                validated.unit_cost_invoice,
                validated.additional_costs,
                validated.quantity,
            )
        else:
            real_unit_cost = state.average_cost

        after = self._averaging.apply(
            position=before,
            movement_type=validated.movement_type,
            quantity=validated.quantity,
            real_unit_cost=real_unit_cost,
        )

        warnings: list[str] = []
        apply_pricing = False
        new_price = new_margin = None

        if validated.movement_type.is_entry:
            deviation = self._pricing.cost_deviation(
                state.average_cost,
                real_unit_cost,
                self._config.costing.cost_deviation_threshold_pct,
            )
            if deviation is not None and deviation.exceeds_threshold:
                warnings.append(COST_DEVIATION_WARNING)
                logger.warning(
                    "cost_deviation",
                    extra={
                        "variant_id": str(state.variant_id),
                        "current_cost": str(deviation.current_cost),
                        "incoming_cost": str(deviation.incoming_cost),
                        "deviation_pct": str(deviation.deviation_pct),
                        "threshold_pct": str(deviation.threshold_pct),
                    },
                )

        if validated.update_price:
            margin = validated.margin_pct if validated.margin_pct is not None else state.margin_pct
            if margin is None:
                raise ValidationError("margin_pct", "a margin is required to update the price")
            result = self._pricing.suggest_price(real_unit_cost, margin)
            if result.is_defined:
                apply_pricing = True
                new_price, new_margin = result.sale_price, result.margin_pct
            else:
                warnings.append(UNDEFINED_COSTING_WARNING)

        unit_cost_basis = None
        if sale is not None:
            if sale.order_id is None:
                raise ValidationError("order_id", "a sale needs an order id")
            sale = SaleFact(
                order_id=sale.order_id,
                unit_sale_price=_optional_amount("unit_sale_price", sale.unit_sale_price),
                quantity=sale.quantity,
            )
            if sale.unit_sale_price is None:
                raise ValidationError("unit_sale_price", "a sale needs a unit sale price")
            unit_cost_basis = state.average_cost

        return PreparedMovement(
            movement=validated,
            expected_version=state.version,
            before=before,
            after=after,
            real_unit_cost=real_unit_cost,
            occurred_at=occurred_at,
            sale=sale,
            unit_cost_basis=unit_cost_basis,
            previous_sale_price=state.sale_price,
            previous_margin_pct=state.margin_pct,
            apply_pricing=apply_pricing,
            sale_price=new_price,
            margin_pct=new_margin,
            warnings=tuple(warnings),
        )

    def commit_movement(self, prepared: PreparedMovement) -> VariantSnapshot:
        """
        Persist a prepared movement against the version it was read at.

        No retry: a StaleStateError propagates after rollback.
        """
        with self._transaction("commit_movement"):
            snapshot = self._ledger.append(prepared)
        return snapshot

    def _record(self, request: MovementRequest, sale: SaleFact | None = None) -> VariantSnapshot:
        attempts = self._config.stock.stale_state_retries + 1
        with LogContext.bind(
            variant_id=str(request.variant_id),
            actor_id=str(request.responsible_id) if request.responsible_id else None,
        ):
            for attempt in range(1, attempts + 1):
                try:
                    with self._transaction("record_movement"):
                        prepared = self.prepare_movement(request, sale)
                        snapshot = self._ledger.append(prepared)
                    return snapshot
                except StaleStateError:
                    if attempt >= attempts:
                        logger.error(
                            "stale_state_retries_exhausted",
                            extra={"attempts": attempt},
                        )
                        raise
                    logger.warning("stale_state_retry", extra={"attempt": attempt})
        raise AssertionError("unreachable")

    def record_movement(
        self,
        variant_id: UUID,
        movement_type: MovementType,
        quantity: int,
        *,
        responsible_id: UUID | None,
        cost_inputs: CostInputs | None = None,
        reason: str | None = None,
        occurred_at: datetime | None = None,
        invoice_number: str | None = None,
        supplier: str | None = None,
        source_document: str | None = None,
        barcode: str | None = None,
        update_price: bool = False,
        margin_pct: Decimal | None = None,
    ) -> VariantSnapshot:
        """
        Validate, cost and persist one stock movement.

        Entry extras: invoice_number, supplier, barcode (replaces the
        variant's barcode), update_price with margin_pct (defaults to the
        variant's current margin) to re-price from the entry's real unit
        cost.

        Returns:
            VariantSnapshot of the variant after the movement, with any
            warnings ("cost_deviation", "undefined_costing").

        Raises:
            ValidationError, VariantNotFoundError, StaleStateError
        """
        if movement_type == MovementType.SALE:
            raise ValidationError("movement_type", "record sales through record_sale()")
        request = MovementRequest(
            variant_id=variant_id,
            movement_type=movement_type,
            quantity=quantity,
            responsible_id=responsible_id,
            cost_inputs=cost_inputs,
            reason=reason,
            occurred_at=occurred_at,
            invoice_number=invoice_number,
            supplier=supplier,
            source_document=source_document,
            barcode=barcode,
            update_price=update_price,
            margin_pct=margin_pct,
        )
        return self._record(request)

    def record_sale(
        self,
        variant_id: UUID,
        sale: SaleFact,
        responsible_id: UUID | None,
        occurred_at: datetime | None = None,
        reason: str | None = None,
    ) -> VariantSnapshot:
        """
        Record a SALE movement with its frozen sale facts.

        The linkage stores the order id, the unit sale price and the
        variant's average cost at this moment as the cost basis.
        """
        if sale is None:
            raise ValidationError("sale", "sale facts are required")
        request = MovementRequest(
            variant_id=variant_id,
            movement_type=MovementType.SALE,
            quantity=sale.quantity,
            responsible_id=responsible_id,
            reason=reason or f"sale for order {sale.order_id}",
            occurred_at=occurred_at,
            source_document=str(sale.order_id) if sale.order_id is not None else None,
        )
        return self._record(request, sale)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_variant_state(self, variant_id: UUID) -> VariantState:
        return self._variants.get_state(variant_id)

    def find_by_sku(self, sku: str) -> VariantState | None:
        return self._variants.find_by_sku(sku)

    def get_movement_history(
        self,
        variant_id: UUID,
        limit: int | None = None,
    ) -> tuple[MovementRecord, ...]:
        """Movements of a variant, most recent first."""
        self._variants.get_state(variant_id)
        return self._ledger.history(variant_id, limit)

    def get_last_entry_cost(self, variant_id: UUID) -> Decimal | None:
        """Real unit cost of the variant's most recent entry, or None."""
        self._variants.get_state(variant_id)
        last = self._movements.last_entry(variant_id)
        return last.real_unit_cost if last else None

    def get_audit_trail(self, variant_id: UUID) -> AuditTrace:
        """Every audit event recorded for a variant, oldest first."""
        return self._auditor.get_trace(VARIANT_ENTITY, variant_id)

    def list_low_stock(self) -> tuple[VariantState, ...]:
        return self._variants.low_stock()
