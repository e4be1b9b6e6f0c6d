"""
ReconciliationService -- keeps an order's child records in line with an
edited form without touching settled children.

Responsibility:
    For one (kind, parent) pair: lock the persisted children, evaluate the
    kind's locked predicate, plan the changes with plan_reconciliation()
    and apply them, all in one transaction.

Architecture position:
    Services -- imperative shell, owns its transaction (commit on success,
    rollback on any failure).

Invariants enforced:
    - Persisted children are read with SELECT ... FOR UPDATE, and their
      locked state is evaluated in the same transaction as the writes.
    - Locked children are never deleted.  An update of a locked child
      happens only with allow_locked_override=True and is audited as
      LOCKED_CHILD_OVERRIDDEN.
    - A conflict applies nothing.
    - Desired values pass through the kind's converters (strings from a
      form become Decimal, date, int, bool or UUID) before they are
      compared with persisted values.

Failure modes:
    - UnknownChildKindError for an unregistered kind.
    - ValidationError for unknown fields, missing required fields on an
      insert, a value a converter cannot parse, or an id that belongs
      to another parent.
    - ReconciliationConflictError naming the conflicting and the skipped
      locked ids.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_engines.reconciliation import (
    ChildOp,
    DesiredChild,
    PersistedChild,
    plan_reconciliation,
)
from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    ReconciliationConflictError,
    UnknownChildKindError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.children import (
    ChecklistItem,
    OrderLineItem,
    PaymentInstallment,
    PhotoAttachment,
)
from stock_kernel.services.auditor_service import AuditorService

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class ChildKind:
    """How to reconcile one kind of child record."""

    name: str
    model: type
    fields: tuple[str, ...]
    required: tuple[str, ...]
    locked_predicate: Callable[[Any], bool]
    converters: Mapping[str, Callable[[Any], Any]] = field(default_factory=dict)


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid integer")
    if isinstance(value, int):
        return value
    return int(str(value).strip())


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _to_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


CHILD_KINDS: dict[str, ChildKind] = {
    "order_line_item": ChildKind(
        name="order_line_item",
        model=OrderLineItem,
        fields=("description", "variant_id", "quantity", "unit_price", "settled"),
        required=("description",),
        locked_predicate=lambda child: bool(child.settled),
        converters={
            "variant_id": _to_uuid,
            "quantity": _to_int,
            "unit_price": to_decimal,
            "settled": _to_bool,
        },
    ),
    "payment_installment": ChildKind(
        name="payment_installment",
        model=PaymentInstallment,
        fields=("installment_number", "amount", "due_date", "payment_method", "status"),
        required=("amount",),
        locked_predicate=lambda child: (child.status or "").lower() == "paid",
        converters={
            "installment_number": _to_int,
            "amount": to_decimal,
            "due_date": _to_date,
        },
    ),
    "checklist_item": ChildKind(
        name="checklist_item",
        model=ChecklistItem,
        fields=("label", "checked", "notes", "signed_off"),
        required=("label",),
        locked_predicate=lambda child: bool(child.signed_off),
        converters={"checked": _to_bool, "signed_off": _to_bool},
    ),
    "photo_attachment": ChildKind(
        name="photo_attachment",
        model=PhotoAttachment,
        fields=("url", "caption"),
        required=("url",),
        locked_predicate=lambda child: False,
    ),
}


@dataclass(frozen=True)
class ReconciliationResult:
    """What was done: (child id, operation) per child, plus protected ids."""

    applied: tuple[tuple[UUID, ChildOp], ...]
    skipped_locked: tuple[UUID, ...]

    def ids_with(self, op: ChildOp) -> tuple[UUID, ...]:
        return tuple(child_id for child_id, child_op in self.applied if child_op is op)


class ReconciliationService:
    """Generic parent/child reconciliation guard."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        kinds: Mapping[str, ChildKind] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._kinds = dict(kinds) if kinds is not None else dict(CHILD_KINDS)
        self._auditor = AuditorService(session, self._clock)

    def _kind(self, kind: str) -> ChildKind:
        try:
            return self._kinds[kind]
        except KeyError:
            raise UnknownChildKindError(kind) from None

    def _desired(self, definition: ChildKind, desired: Iterable[Mapping[str, Any]]) -> tuple[DesiredChild, ...]:
        children = []
        for item in desired:
            values = dict(item)
            raw_id = values.pop("id", None)
            unknown = sorted(set(values) - set(definition.fields))
            if unknown:
                raise ValidationError(
                    "desired", f"unknown field(s) for {definition.name}: {', '.join(unknown)}"
                )
            try:
                child_id = raw_id if raw_id is None or isinstance(raw_id, UUID) else UUID(str(raw_id))
            except ValueError:
                raise ValidationError("desired", f"not a valid id: {raw_id!r}") from None
            for name, convert in definition.converters.items():
                if values.get(name) is None:
                    continue
                try:
                    values[name] = convert(values[name])
                except (TypeError, ValueError, InvalidOperation):
                    raise ValidationError(
                        "desired", f"{definition.name}.{name} is not valid: {values[name]!r}"
                    ) from None
            children.append(DesiredChild(id=child_id, values=values))
        return tuple(children)

    def reconcile_children(
        self,
        kind: str,
        parent_id: UUID,
        desired: Iterable[Mapping[str, Any]],
        actor_id: UUID,
        allow_locked_override: bool = False,
    ) -> ReconciliationResult:
        """
        Bring the children of ``parent_id`` in line with ``desired``.

        Each desired item is a mapping of field values with an optional
        "id".  Items without an id (or with an id not yet persisted) are
        inserted; persisted children absent from ``desired`` are deleted
        unless locked.

        Raises:
            UnknownChildKindError, ValidationError, ReconciliationConflictError
        """
        definition = self._kind(kind)
        if actor_id is None:
            raise ValidationError("actor_id", "an actor is required")
        wanted = self._desired(definition, desired)
        model = definition.model

        with LogContext.bind(parent_id=str(parent_id), actor_id=str(actor_id)):
            try:
                rows = self._session.execute(
                    select(model)
                    .where(model.parent_id == parent_id)
                    .order_by(model.id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalars().all()
                by_id = {row.id: row for row in rows}

                for child in wanted:
                    if child.id in by_id:
                        continue
                    if child.id is not None and self._session.get(model, child.id) is not None:
                        raise ValidationError(
                            "desired", f"{definition.name} {child.id} belongs to another parent"
                        )
                    missing = [f for f in definition.required if child.values.get(f) is None]
                    if missing:
                        raise ValidationError(
                            "desired", f"new {definition.name} is missing {', '.join(missing)}"
                        )

                persisted = tuple(
                    PersistedChild(
                        id=row.id,
                        values={name: getattr(row, name) for name in definition.fields},
                        locked=bool(definition.locked_predicate(row)),
                    )
                    for row in rows
                )
                plan = plan_reconciliation(
                    persisted=persisted,
                    desired=wanted,
                    allow_locked_override=allow_locked_override,
                )

                if plan.has_conflicts:
                    logger.warning(
                        "reconciliation_conflict",
                        extra={
                            "kind": definition.name,
                            "conflicting_ids": [str(i) for i in plan.conflicting_ids],
                        },
                    )
                    raise ReconciliationConflictError(
                        definition.name,
                        parent_id,
                        [str(i) for i in plan.conflicting_ids],
                        [str(i) for i in plan.skipped_locked],
                    )

                applied: list[tuple[UUID, ChildOp]] = []
                for op in plan.ops:
                    if op.op is ChildOp.DELETED:
                        self._session.delete(by_id[op.child_id])
                        applied.append((op.child_id, op.op))
                    elif op.op is ChildOp.INSERTED:
                        row = model(parent_id=parent_id, created_by_id=actor_id, **op.values)
                        if op.child_id is not None:
                            row.id = op.child_id
                        self._session.add(row)
                        self._session.flush()
                        applied.append((row.id, op.op))
                    elif op.op is ChildOp.UPDATED:
                        row = by_id[op.child_id]
                        before = {name: getattr(row, name) for name in op.changed_fields}
                        for name, value in op.values.items():
                            setattr(row, name, value)
                        row.updated_by_id = actor_id
                        self._session.flush()
                        if op.overrides_lock:
                            self._auditor.record_change(
                                actor_id=actor_id,
                                entity_type=model.__name__,
                                entity_id=row.id,
                                action=AuditAction.LOCKED_CHILD_OVERRIDDEN,
                                before=before,
                                after={name: getattr(row, name) for name in op.changed_fields},
                            )
                            logger.warning(
                                "locked_child_overridden",
                                extra={
                                    "kind": definition.name,
                                    "child_id": str(row.id),
                                    "fields": list(op.changed_fields),
                                },
                            )
                        applied.append((row.id, op.op))
                    else:
                        applied.append((op.child_id, op.op))

                self._session.flush()
                self._session.commit()
            except Exception as exc:
                self._session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={
                        "operation": "reconcile_children",
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                    },
                )
                raise

            logger.info(
                "children_reconciled",
                extra={
                    "kind": definition.name,
                    "applied": len(applied),
                    "skipped_locked": len(plan.skipped_locked),
                },
            )
        return ReconciliationResult(
            applied=tuple(applied),
            skipped_locked=plan.skipped_locked,
        )
