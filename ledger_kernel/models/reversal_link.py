"""
Module: ledger_kernel.models.reversal_link
Responsibility: ORM persistence for the link between an original transaction
    and each transaction that (fully or partially) reverses it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One original may have many reversals; a reversing transaction has
      exactly one link (UNIQUE reversing_transaction_id).
    - A link is deletable only while its reversing transaction is a draft.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import StrEnumType, TenantScoped, TrackedBase, UUIDString


class ReversalKind(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class ReversalLink(TenantScoped, TrackedBase):
    __tablename__ = "reversal_links"
    __table_args__ = (
        Index("idx_reversal_original", "original_transaction_id"),
    )

    original_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    reversing_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
        unique=True,
    )

    kind: Mapped[ReversalKind] = mapped_column(
        StrEnumType(ReversalKind, length=10),
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ReversalLink {self.kind.value} "
            f"{self.original_transaction_id} -> {self.reversing_transaction_id}>"
        )
