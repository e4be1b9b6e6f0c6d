"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the order subsystem, catalog screens, report exporters) must react
differently to a rejected input, a lost race, and a settled record.  Parsing
messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        inventory.record_movement(...)
    except ValidationError as e:
        form.mark_invalid(e.field, e.reason)
    except StaleStateError:
        # Already retried once by InventoryService; surface to the user
        show_retry_banner()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |
    +-- ConcurrencyError
    |   +-- StaleStateError
    |
    +-- CostingError
    |   +-- UndefinedCostingError
    |
    +-- VariantError
    |   +-- VariantNotFoundError
    |   +-- DuplicateSkuError
    |   +-- VariantReferencedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- DerivedFieldWriteError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ReconciliationError
        +-- ReconciliationConflictError
        +-- UnknownChildKindError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Malformed / out-of-range input
----------------|-----------------------------|-----------------------------------------
Concurrency     | STALE_STATE                 | Variant version moved under the writer
----------------|-----------------------------|-----------------------------------------
Costing         | UNDEFINED_COSTING           | Numeric margin/price demanded at cost <= 0
----------------|-----------------------------|-----------------------------------------
Variant         | VARIANT_NOT_FOUND           | Variant ID doesn't exist
                | DUPLICATE_SKU               | SKU already registered
                | VARIANT_REFERENCED          | Delete of a variant with movements
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of ledger/audit rows
                | DERIVED_FIELD_WRITE         | Direct write of quantity/cost/version
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Reconciliation  | RECONCILIATION_CONFLICT     | Desired set changes a locked child
                | UNKNOWN_CHILD_KIND          | Child kind not registered

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError is always raised BEFORE anything is flushed; nothing
   needs cleaning up.

2. StaleStateError has ``retryable = True``.  InventoryService re-reads the
   variant and retries once on its own; callers only see it when the second
   attempt also lost the race.

3. ReconciliationConflictError is never retried automatically.  The caller
   either drops the change or re-submits through the explicit override path.

4. UndefinedCostingError only appears when a caller calls
   ``PricingResult.require()``.  The normal path returns an
   ``UNDEFINED_COSTING`` pricing result and renders a warning.
"""

from uuid import UUID


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """
    Input failed a precondition.

    Raised before any persistence; ``field`` names the offending input.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Concurrency


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """
    The variant aggregate changed between read and write.

    The movement and the aggregate update were both rolled back.  Re-read
    the variant and retry.
    """

    code: str = "STALE_STATE"
    retryable: bool = True

    def __init__(self, variant_id: UUID | str, expected_version: int):
        self.variant_id = str(variant_id)
        self.expected_version = expected_version
        super().__init__(
            f"Stale state on variant {variant_id}: expected version "
            f"{expected_version} was superseded by another writer"
        )


# Costing


class CostingError(StockKernelError):
    """Base exception for costing errors."""

    code: str = "COSTING_ERROR"


class UndefinedCostingError(CostingError):
    """Margin/price cannot be derived because cost is not positive."""

    code: str = "UNDEFINED_COSTING"

    def __init__(self, cost: object):
        self.cost = str(cost)
        super().__init__(
            f"Cannot derive margin or price from a non-positive cost ({cost})"
        )


# Variant


class VariantError(StockKernelError):
    """Base exception for variant errors."""

    code: str = "VARIANT_ERROR"


class VariantNotFoundError(VariantError):
    """Variant with given ID was not found."""

    code: str = "VARIANT_NOT_FOUND"

    def __init__(self, variant_id: UUID | str):
        self.variant_id = str(variant_id)
        super().__init__(f"Variant not found: {variant_id}")


class DuplicateSkuError(VariantError):
    """A variant with this SKU already exists."""

    code: str = "DUPLICATE_SKU"

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU already registered: {sku}")


class VariantReferencedError(VariantError):
    """Variant cannot be deleted while movements reference it."""

    code: str = "VARIANT_REFERENCED"

    def __init__(self, variant_id: UUID | str):
        self.variant_id = str(variant_id)
        super().__init__(
            f"Variant {variant_id} is referenced by stock movements and cannot be deleted"
        )


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    StockMovement, SaleLinkage and AuditEvent rows are write-once.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class DerivedFieldWriteError(ImmutabilityError):
    """
    Attempted to set a variant's derived stock fields directly.

    quantity, average_cost and version are written only by the stock ledger.
    """

    code: str = "DERIVED_FIELD_WRITE"

    def __init__(self, variant_id: str, fields: list[str]):
        self.variant_id = variant_id
        self.fields = sorted(fields)
        super().__init__(
            f"Derived fields {', '.join(self.fields)} of variant {variant_id} "
            "can only be changed by recording a stock movement"
        )


# Audit


class AuditError(StockKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Reconciliation


class ReconciliationError(StockKernelError):
    """Base exception for child reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class ReconciliationConflictError(ReconciliationError):
    """
    The desired child set would change a settled/locked child.

    Nothing was applied.  ``conflicting_ids`` are the locked children the
    desired set tried to change; ``skipped_locked`` are all locked children
    that were protected.
    """

    code: str = "RECONCILIATION_CONFLICT"

    def __init__(
        self,
        kind: str,
        parent_id: UUID | str,
        conflicting_ids: list[str],
        skipped_locked: list[str],
    ):
        self.kind = kind
        self.parent_id = str(parent_id)
        self.conflicting_ids = conflicting_ids
        self.skipped_locked = skipped_locked
        super().__init__(
            f"Cannot change locked {kind} children of {parent_id}: "
            f"{', '.join(conflicting_ids)}"
        )


class UnknownChildKindError(ReconciliationError):
    """No reconciliation definition registered for this child kind."""

    code: str = "UNKNOWN_CHILD_KIND"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown child kind: {kind}")
