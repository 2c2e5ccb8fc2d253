"""
AuditorService -- the audit sink used by every state-changing service.

Responsibility:
    Records append-only audit events for postings, reversals, draft creation
    and deletion, chart of accounts changes, period lock changes and tax code
    changes.  Provides trace queries and payload hash verification for
    forensic review.

Architecture position:
    Kernel > Services.  Called by PostingService, ReversalService,
    TransactionService, AccountService, PeriodService and TaxCodeService.

Invariants enforced:
    - Audit rows are added to the caller's session, so they commit or roll
      back together with the ledger change they describe.
    - Append-only: the AuditEvent model is protected by ORM listeners.
    - ``payload_hash`` is the SHA-256 of the canonical JSON of ``details``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditEvent, AuditEventType
from ledger_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.auditor")


class AuditSink(Protocol):
    """Synchronous audit sink invoked inside the caller's unit of work."""

    def log_event(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        event_type: AuditEventType | str,
        entity_type: str,
        entity_id: UUID,
        summary: str,
        details: dict[str, Any] | None = None,
    ) -> Any:
        ...


@dataclass(frozen=True)
class AuditTraceEntry:
    event_type: str
    occurred_at: datetime
    actor_id: UUID
    summary: str
    details: dict[str, Any] | None
    payload_hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def event_types(self) -> tuple[str, ...]:
        return tuple(e.event_type for e in self.entries)


class AuditorService:
    """
    Default AuditSink backed by the ``audit_events`` table.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
        - Does NOT decide retention or export of audit rows.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()

    def log_event(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        event_type: AuditEventType | str,
        entity_type: str,
        entity_id: UUID,
        summary: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Add an audit event to the current unit of work.

        Postconditions:
            - A new AuditEvent row is pending in the session (flushed by the
              caller's next flush or commit).
            - ``payload_hash == hash_payload(details)``.
        """
        event_type_value = (
            event_type.value if isinstance(event_type, AuditEventType) else str(event_type)
        )
        stored_details = to_json_safe(details)
        audit_event = AuditEvent(
            tenant_id=tenant_id,
            actor_id=actor_id,
            event_type=event_type_value,
            entity_type=entity_type,
            entity_id=entity_id,
            summary=summary[:500],
            details=stored_details,
            payload_hash=hash_payload(stored_details),
            occurred_at=self._clock.now(),
        )
        self._session.add(audit_event)

        logger.info(
            "audit_event_recorded",
            extra={
                "event_type": event_type_value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return audit_event

    def get_trace(self, tenant_id: UUID, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Return the audit history of one entity."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.tenant_id == tenant_id,
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.occurred_at, AuditEvent.id)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    event_type=e.event_type,
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    summary=e.summary,
                    details=e.details,
                    payload_hash=e.payload_hash,
                )
                for e in events
            ),
        )

    def find_tampered_events(self, tenant_id: UUID) -> list[UUID]:
        """Ids of audit events whose stored details no longer match their hash."""
        events = self._session.execute(
            select(AuditEvent).where(AuditEvent.tenant_id == tenant_id)
        ).scalars()
        tampered = [e.id for e in events if hash_payload(e.details) != e.payload_hash]
        if tampered:
            logger.error(
                "audit_payload_hash_mismatch",
                extra={"tenant_id": str(tenant_id), "count": len(tampered)},
            )
        return tampered
