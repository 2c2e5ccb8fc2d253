"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for general ledger entries, the single source
    of truth for every report.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one of amount_dr / amount_cr is non-zero (CHECK constraint).
    - One entry per transaction line (UNIQUE transaction_line_id), so entries
      are generated exactly once.
    - Entries are never updated or deleted (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TenantScoped, UUIDString


class LedgerEntry(TenantScoped, Base):
    """Append-only general ledger row derived from one posted transaction line."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "(amount_dr > 0 AND amount_cr = 0) OR (amount_cr > 0 AND amount_dr = 0)",
            name="ck_ledger_entry_one_side",
        ),
        Index("idx_ledger_tenant_account_date", "tenant_id", "account_id", "entry_date"),
        Index("idx_ledger_transaction", "transaction_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    transaction_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transaction_lines.id"),
        nullable=False,
        unique=True,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry_date: Mapped[date] = mapped_column(nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    amount_dr: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    amount_cr: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tax_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Tax posted for tax_code, as opposed to the base it was charged on
    is_tax_line: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    department: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.transaction_id}#{self.line_seq} dr={self.amount_dr} cr={self.amount_cr}>"

    @property
    def signed_amount(self) -> Decimal:
        """Debit-positive amount."""
        return self.amount_dr - self.amount_cr
