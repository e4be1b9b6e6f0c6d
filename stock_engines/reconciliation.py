"""
stock_engines.reconciliation -- Diff of persisted vs. desired child records.

Responsibility:
    Plan how to bring a parent's persisted children in line with the set a
    caller submits (an edited order form, for instance):

        persisted only          -> delete
        desired without an id   -> insert
        desired, unknown id     -> insert with that id
        desired, known id       -> update when values differ, else unchanged

    Locked children (settled line items, paid installments, signed-off
    checklist items) are never deleted and never overwritten silently.

Architecture position:
    Engines -- pure, zero I/O.  ReconciliationService loads the children
    under a row lock, evaluates the kind's locked predicate, calls
    plan_reconciliation() and applies the plan in the same transaction.

Invariants enforced:
    - A locked child omitted from the desired set is kept and reported in
      skipped_locked.
    - A locked child desired with identical values is kept and reported in
      skipped_locked.
    - A locked child desired with different values is a conflict.  With
      allow_locked_override it becomes an UPDATE flagged as an override;
      deletion of a locked child is never planned.
    - Duplicate ids in the desired set are rejected.

Failure modes:
    - ValidationError("desired", ...) on duplicate desired ids.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


class ChildOp(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PersistedChild:
    id: UUID
    values: Mapping[str, Any]
    locked: bool


@dataclass(frozen=True)
class DesiredChild:
    id: UUID | None
    values: Mapping[str, Any]


@dataclass(frozen=True)
class PlannedOp:
    """One step of a plan.  child_id is None for inserts that need a new id."""

    op: ChildOp
    child_id: UUID | None
    values: Mapping[str, Any] = field(default_factory=dict)
    changed_fields: tuple[str, ...] = ()
    overrides_lock: bool = False


@dataclass(frozen=True)
class ReconciliationPlan:
    ops: tuple[PlannedOp, ...]
    skipped_locked: tuple[UUID, ...]
    conflicting_ids: tuple[UUID, ...]

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicting_ids)


def _changed_fields(persisted: Mapping[str, Any], desired: Mapping[str, Any]) -> tuple[str, ...]:
    """Fields of ``desired`` whose value differs from ``persisted``."""
    return tuple(
        sorted(name for name, value in desired.items() if persisted.get(name) != value)
    )


@traced_engine(
    "reconciliation", "1.0",
    fingerprint_fields=("persisted", "desired", "allow_locked_override"),
)
def plan_reconciliation(
    *,
    persisted: tuple[PersistedChild, ...],
    desired: tuple[DesiredChild, ...],
    allow_locked_override: bool = False,
) -> ReconciliationPlan:
    """
    Compute the operations that turn ``persisted`` into ``desired``.

    The plan is computed in full even when conflicts exist, so callers can
    report every conflicting id at once.
    """
    seen: set[UUID] = set()
    for child in desired:
        if child.id is None:
            continue
        if child.id in seen:
            raise ValidationError("desired", f"duplicate child id {child.id}")
        seen.add(child.id)

    by_id = {child.id: child for child in persisted}
    ops: list[PlannedOp] = []
    skipped: list[UUID] = []
    conflicts: list[UUID] = []

    for child in persisted:
        if child.id in seen:
            continue
        if child.locked:
            skipped.append(child.id)
        else:
            ops.append(PlannedOp(op=ChildOp.DELETED, child_id=child.id))

    for child in desired:
        current = by_id.get(child.id) if child.id is not None else None
        if current is None:
            ops.append(PlannedOp(op=ChildOp.INSERTED, child_id=child.id, values=dict(child.values)))
            continue

        changed = _changed_fields(current.values, child.values)
        if not changed:
            if current.locked:
                skipped.append(current.id)
            else:
                ops.append(PlannedOp(op=ChildOp.UNCHANGED, child_id=current.id))
            continue

        if current.locked:
            if not allow_locked_override:
                conflicts.append(current.id)
                continue
            ops.append(
                PlannedOp(
                    op=ChildOp.UPDATED,
                    child_id=current.id,
                    values={name: child.values[name] for name in changed},
                    changed_fields=changed,
                    overrides_lock=True,
                )
            )
            continue

        ops.append(
            PlannedOp(
                op=ChildOp.UPDATED,
                child_id=current.id,
                values={name: child.values[name] for name in changed},
                changed_fields=changed,
            )
        )

    logger.debug(
        "reconciliation_planned",
        extra={
            "op_count": len(ops),
            "skipped_locked": len(skipped),
            "conflicts": len(conflicts),
        },
    )
    return ReconciliationPlan(
        ops=tuple(ops),
        skipped_locked=tuple(skipped),
        conflicting_ids=tuple(conflicts),
    )
