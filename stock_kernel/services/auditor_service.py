"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Appends hash-chained audit events for every change to a variant, a
    stock movement or a locked child record.  Provides chain validation
    for tamper detection and trace queries answering "why is this value X
    today".

Architecture position:
    Kernel > Services -- imperative shell, called by StockLedgerService,
    InventoryService and ReconciliationService inside their transaction.

Invariants enforced:
    - Sequence numbers come from SequenceService (locked counter row).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - Append-only: AuditEvent rows are never modified or deleted (ORM
      listener + PostgreSQL trigger).
    - An audit event is written in the same transaction as the change it
      describes; a rolled-back change leaves no audit event.

Failure modes:
    - AuditChainBrokenError: a stored hash or payload hash does not match
      its recomputed value, or prev_hash does not match the predecessor.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AuditTraceEntry
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTrace:
    """Complete audit trace for a single entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


def _jsonable(value: Any) -> Any:
    """Render a snapshot value as plain JSON (Decimals as fixed-point strings)."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class AuditorService:
    """
    Service for the audit hash chain.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT audit rejected inputs: validation happens before any
          write and leaves no trace.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def record_change(
        self,
        actor_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> AuditEvent:
        """
        Append one hash-chained audit event.

        Postconditions:
            A new AuditEvent is flushed with the next seq and a valid link
            to its predecessor.  ``payload`` is {"before": ..., "after": ...}
            rendered as plain JSON.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload = {"before": _jsonable(before), "after": _jsonable(after)}
        computed_payload_hash = hash_payload(payload)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: at the first event whose payload hash,
                hash or prev_hash link does not check out.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_payload_hash = hash_payload(
                json.loads(json.dumps(event.payload or {}))
            )
            if event.payload_hash != expected_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), expected_payload_hash, event.payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action.value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id), expected_prev, event.prev_hash or "None",
                    )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit events for one entity, in seq order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_model(event) for event in events),
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent audit events first."""
        return list(
            self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
            ).scalars().all()
        )
