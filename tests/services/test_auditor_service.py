"""
Tests for the audit hash chain.
"""

from decimal import Decimal
from uuid import uuid4

from stock_engines.pricing import EditedField
from stock_kernel.domain.dtos import CostInputs, MovementType
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.services.auditor_service import AuditorService


class TestHashChain:
    def test_empty_chain_is_valid(self, session, clock):
        assert AuditorService(session, clock).validate_chain() is True

    def test_chain_across_services_is_valid(
        self, session, clock, inventory, make_variant, collaborators, test_actor_id,
    ):
        variant = make_variant(opening=(10, Decimal("5.00")), responsible_id=collaborators.buyer.id)
        inventory.set_pricing(
            variant.variant_id, EditedField.MARGIN, test_actor_id, margin_pct=Decimal("30"),
        )
        inventory.record_movement(
            variant.variant_id,
            MovementType.EXIT,
            1,
            responsible_id=collaborators.seller.id,
            reason="display unit",
        )

        auditor = AuditorService(session, clock)
        assert auditor.validate_chain() is True

        events = auditor.get_recent_events()
        assert [e.seq for e in events] == sorted((e.seq for e in events), reverse=True)
        assert events[-1].prev_hash is None
        assert events[0].prev_hash == events[1].hash

    def test_record_change_links_to_previous(self, session, clock, test_actor_id):
        auditor = AuditorService(session, clock)
        entity_id = uuid4()

        first = auditor.record_change(
            test_actor_id, "Variant", entity_id, AuditAction.BARCODE_CHANGED,
            before={"barcode": None}, after={"barcode": "1"},
        )
        second = auditor.record_change(
            test_actor_id, "Variant", entity_id, AuditAction.BARCODE_CHANGED,
            before={"barcode": "1"}, after={"barcode": "2"},
        )

        assert first.prev_hash is None
        assert second.prev_hash == first.hash
        assert second.seq == first.seq + 1

    def test_trace_is_oldest_first(self, session, clock, inventory, make_variant, collaborators):
        variant = make_variant(opening=(1, Decimal("2.00")), responsible_id=collaborators.buyer.id)

        trace = AuditorService(session, clock).get_trace("Variant", variant.variant_id)

        assert [e.action for e in trace.entries] == [
            AuditAction.VARIANT_REGISTERED.value,
            AuditAction.STOCK_MOVEMENT_RECORDED.value,
        ]
        assert trace.last_action == AuditAction.STOCK_MOVEMENT_RECORDED.value
        assert not trace.is_empty

    def test_decimals_are_stored_as_fixed_point_strings(self, session, clock, test_actor_id):
        event = AuditorService(session, clock).record_change(
            test_actor_id, "Variant", uuid4(), AuditAction.PRICE_OVERRIDDEN,
            before=None, after={"sale_price": Decimal("1.50E+2"), "margin_pct": Decimal("12.5000")},
        )

        assert event.payload["after"] == {"sale_price": "150", "margin_pct": "12.5"}
        assert event.payload["before"] is None
