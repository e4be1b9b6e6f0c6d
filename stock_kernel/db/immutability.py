"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock ledger is the source of truth for every quantity and average cost.
If a movement row could be edited after the fact, the variant's position
would no longer be the sum of its movements and past margins would silently
change.  Corrections are compensating movements, never edits.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL and bulk statements against the append-only tables
    - Only installed when the engine is PostgreSQL

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule                                   | Error
----------------|----------------------------------------|--------------------------
StockMovement   | No UPDATE, no DELETE                   | ImmutabilityViolationError
SaleLinkage     | No UPDATE, no DELETE                   | ImmutabilityViolationError
AuditEvent      | No UPDATE, no DELETE                   | ImmutabilityViolationError
Variant         | quantity/average_cost/version only via | DerivedFieldWriteError
                | the stock ledger's versioned UPDATE    |
Variant         | No DELETE while movements reference it | VariantReferencedError

The stock ledger writes derived fields with a version-checked UPDATE
statement.  Statement-level updates do not pass through the unit of work,
so the before_update listener below only sees (and rejects) attribute
writes made on a loaded Variant.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from stock_kernel.exceptions import (
    DerivedFieldWriteError,
    ImmutabilityViolationError,
    VariantReferencedError,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_columns(target) -> list[str]:
    """Names of column attributes with pending changes on ``target``."""
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Append-only records
# =============================================================================


def _check_movement_update(mapper, connection, target):
    """Stock movements are write-once."""
    if _changed_columns(target):
        _block(
            "StockMovement", target, "UPDATE",
            "Stock movements are immutable; record a compensating movement instead",
        )


def _check_movement_delete(mapper, connection, target):
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


def _check_sale_linkage_update(mapper, connection, target):
    """The cost basis snapshot is frozen at sale time."""
    if _changed_columns(target):
        _block("SaleLinkage", target, "UPDATE", "Sale linkages are immutable")


def _check_sale_linkage_delete(mapper, connection, target):
    _block("SaleLinkage", target, "DELETE", "Sale linkages cannot be deleted")


def _check_audit_event_update(mapper, connection, target):
    if _changed_columns(target):
        _block(
            "AuditEvent", target, "UPDATE",
            "Audit events are immutable and cannot be modified",
        )


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


# =============================================================================
# Variant derived fields
# =============================================================================


def _check_variant_derived_insert(mapper, connection, target):
    """
    A new variant starts with an empty stock position.

    Opening stock is recorded as an entry movement so that quantity always
    equals the sum of movements.
    """
    offending = []
    if target.quantity not in (None, 0):
        offending.append("quantity")
    if target.average_cost is not None and target.average_cost != 0:
        offending.append("average_cost")
    if target.version not in (None, 0):
        offending.append("version")
    if offending:
        logger.error(
            "derived_field_write_blocked",
            extra={"variant_id": str(target.id), "fields": offending, "operation": "INSERT"},
        )
        raise DerivedFieldWriteError(variant_id=str(target.id), fields=offending)


def _check_variant_derived_update(mapper, connection, target):
    """quantity, average_cost and version have a single writer: the ledger."""
    from stock_kernel.models.variant import DERIVED_FIELDS

    offending = [name for name in _changed_columns(target) if name in DERIVED_FIELDS]
    if offending:
        logger.error(
            "derived_field_write_blocked",
            extra={"variant_id": str(target.id), "fields": offending, "operation": "UPDATE"},
        )
        raise DerivedFieldWriteError(variant_id=str(target.id), fields=offending)


def _check_variant_deletion_before_flush(session, flush_context, instances):
    """
    Reject deletion of variants that have stock movements.

    Runs in before_flush: mapper-level delete events fire after the flush
    plan is fixed, which is too late to keep the rest of the flush intact.
    """
    from stock_kernel.models.stock_movement import StockMovement
    from stock_kernel.models.variant import Variant

    for obj in list(session.deleted):
        if not isinstance(obj, Variant):
            continue

        with session.no_autoflush:
            referenced = session.execute(
                select(StockMovement.id)
                .where(StockMovement.variant_id == obj.id)
                .limit(1)
            ).first()

        if referenced is not None:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Variant",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "variant_has_movements",
                },
            )
            raise VariantReferencedError(variant_id=obj.id)


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from stock_kernel.models.audit_event import AuditEvent
    from stock_kernel.models.sale_linkage import SaleLinkage
    from stock_kernel.models.stock_movement import StockMovement
    from stock_kernel.models.variant import Variant

    return [
        (Session, "before_flush", _check_variant_deletion_before_flush),
        (StockMovement, "before_update", _check_movement_update),
        (StockMovement, "before_delete", _check_movement_delete),
        (SaleLinkage, "before_update", _check_sale_linkage_update),
        (SaleLinkage, "before_delete", _check_sale_linkage_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (Variant, "before_insert", _check_variant_derived_insert),
        (Variant, "before_update", _check_variant_derived_update),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after the models are importable and before any writes.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to tamper with rows to verify
    detection (e.g. audit chain validation).
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
