"""
Module: ledger_kernel.models.audit_event
Responsibility: ORM persistence for audit events emitted by the ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: audit events are never updated or deleted
      (db/immutability.py).
    - payload_hash is the SHA-256 of the canonical JSON of details, written
      once so later tampering with details is detectable.
    - Written through the same session as the ledger change they describe,
      so they commit or roll back together.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TenantScoped, UUIDString


class AuditEventType(str, Enum):
    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_DELETED = "TRANSACTION_DELETED"
    TRANSACTION_POSTED = "TRANSACTION_POSTED"
    REVERSAL_CREATED = "REVERSAL_CREATED"
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    ACCOUNT_UPDATED = "ACCOUNT_UPDATED"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    FISCAL_YEAR_CREATED = "FISCAL_YEAR_CREATED"
    PERIOD_LOCKED = "PERIOD_LOCKED"
    PERIOD_REOPENED = "PERIOD_REOPENED"
    TAXCODE_CREATED = "TAXCODE_CREATED"
    TAXCODE_UPDATED = "TAXCODE_UPDATED"
    TAXCODE_DEACTIVATED = "TAXCODE_DEACTIVATED"


class AuditEvent(TenantScoped, Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_tenant_occurred", "tenant_id", "occurred_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    summary: Mapped[str] = mapped_column(String(500), nullable=False)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.event_type} {self.entity_type}:{self.entity_id}>"
