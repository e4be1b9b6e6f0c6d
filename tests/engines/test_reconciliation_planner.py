"""
Tests for the child reconciliation planner.

Locked children (paid installments, settled lines) survive omission and
are never overwritten without an explicit override.
"""

from uuid import uuid4

import pytest

from stock_engines.reconciliation import (
    ChildOp,
    DesiredChild,
    PersistedChild,
    plan_reconciliation,
)
from stock_kernel.exceptions import ValidationError


def _ops(plan, op):
    return [planned for planned in plan.ops if planned.op is op]


class TestUnlockedChildren:
    def test_omitted_child_is_deleted(self):
        a = PersistedChild(uuid4(), {"amount": 100}, locked=False)

        plan = plan_reconciliation(persisted=(a,), desired=())

        assert [(p.op, p.child_id) for p in plan.ops] == [(ChildOp.DELETED, a.id)]

    def test_desired_without_id_is_inserted(self):
        plan = plan_reconciliation(persisted=(), desired=(DesiredChild(None, {"amount": 50}),))

        inserted = _ops(plan, ChildOp.INSERTED)
        assert len(inserted) == 1
        assert inserted[0].child_id is None
        assert inserted[0].values == {"amount": 50}

    def test_desired_with_unknown_id_is_inserted_with_that_id(self):
        new_id = uuid4()

        plan = plan_reconciliation(persisted=(), desired=(DesiredChild(new_id, {"amount": 50}),))

        assert _ops(plan, ChildOp.INSERTED)[0].child_id == new_id

    def test_changed_child_is_updated_with_only_changed_fields(self):
        a = PersistedChild(uuid4(), {"amount": 100, "status": "open"}, locked=False)

        plan = plan_reconciliation(
            persisted=(a,),
            desired=(DesiredChild(a.id, {"amount": 120, "status": "open"}),),
        )

        (updated,) = _ops(plan, ChildOp.UPDATED)
        assert updated.child_id == a.id
        assert updated.values == {"amount": 120}
        assert updated.changed_fields == ("amount",)
        assert updated.overrides_lock is False

    def test_identical_child_is_unchanged(self):
        a = PersistedChild(uuid4(), {"amount": 100}, locked=False)

        plan = plan_reconciliation(persisted=(a,), desired=(DesiredChild(a.id, {"amount": 100}),))

        assert [(p.op, p.child_id) for p in plan.ops] == [(ChildOp.UNCHANGED, a.id)]

    def test_duplicate_desired_ids_are_rejected(self):
        dup = uuid4()

        with pytest.raises(ValidationError) as exc_info:
            plan_reconciliation(
                persisted=(),
                desired=(DesiredChild(dup, {}), DesiredChild(dup, {})),
            )
        assert exc_info.value.field == "desired"


class TestLockedChildren:
    def setup_method(self):
        self.paid = PersistedChild(uuid4(), {"amount": 100, "status": "paid"}, locked=True)
        self.open = PersistedChild(uuid4(), {"amount": 200, "status": "open"}, locked=False)

    def test_omitted_locked_child_is_kept(self):
        plan = plan_reconciliation(
            persisted=(self.paid, self.open),
            desired=(DesiredChild(None, {"amount": 300, "status": "open"}),),
        )

        assert plan.skipped_locked == (self.paid.id,)
        assert [p.child_id for p in _ops(plan, ChildOp.DELETED)] == [self.open.id]
        assert len(_ops(plan, ChildOp.INSERTED)) == 1
        assert not plan.has_conflicts

    def test_identical_locked_child_is_skipped(self):
        plan = plan_reconciliation(
            persisted=(self.paid,),
            desired=(DesiredChild(self.paid.id, dict(self.paid.values)),),
        )

        assert plan.skipped_locked == (self.paid.id,)
        assert plan.ops == ()

    def test_changed_locked_child_is_a_conflict(self):
        plan = plan_reconciliation(
            persisted=(self.paid,),
            desired=(DesiredChild(self.paid.id, {"amount": 90, "status": "paid"}),),
        )

        assert plan.has_conflicts
        assert plan.conflicting_ids == (self.paid.id,)
        assert _ops(plan, ChildOp.UPDATED) == []

    def test_override_turns_conflict_into_flagged_update(self):
        plan = plan_reconciliation(
            persisted=(self.paid,),
            desired=(DesiredChild(self.paid.id, {"amount": 90, "status": "paid"}),),
            allow_locked_override=True,
        )

        (updated,) = _ops(plan, ChildOp.UPDATED)
        assert updated.overrides_lock is True
        assert updated.values == {"amount": 90}
        assert not plan.has_conflicts

    def test_override_never_deletes_locked_child(self):
        plan = plan_reconciliation(persisted=(self.paid,), desired=(), allow_locked_override=True)

        assert _ops(plan, ChildOp.DELETED) == []
        assert plan.skipped_locked == (self.paid.id,)
