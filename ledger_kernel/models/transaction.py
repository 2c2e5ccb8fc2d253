"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for transactions (the posting aggregate) and
    their ordered lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Lifecycle is DRAFT -> POSTED, exactly once.  Lines may be added,
      edited and removed only while DRAFT.
    - A POSTED transaction's header and lines are never mutated or deleted
      (ORM listeners in db/immutability.py).
    - line_seq is unique per transaction and drives ledger entry order.
    - The version column is SQLAlchemy's optimistic lock counter; a stale
      UPDATE raises StaleDataError, which the posting engine surfaces as
      ConcurrentPostingError.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a posted transaction
      or of a line belonging to one.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import StrEnumType, TenantScoped, TrackedBase, UUIDString


class TransactionType(str, Enum):
    PAYMENT = "payment"
    RECEIPT = "receipt"
    JOURNAL = "journal"
    TRANSFER = "transfer"
    SALES_INVOICE = "sales_invoice"
    SUPPLIER_BILL = "supplier_bill"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"


class TransactionStatus(str, Enum):
    """Contract: transitions are one-way, DRAFT -> POSTED."""

    DRAFT = "draft"
    POSTED = "posted"


class Direction(str, Enum):
    """Which side of the ledger a line lands on.  Amounts are always positive."""

    DEBIT = "debit"
    CREDIT = "credit"

    def opposite(self) -> "Direction":
        return Direction.CREDIT if self is Direction.DEBIT else Direction.DEBIT


class Transaction(TenantScoped, TrackedBase):
    """
    Transaction header: the atomic unit of posting.

    Contract:
        Every line of a POSTED transaction has exactly one LedgerEntry, and
        the debit total equals the credit total at two decimal places.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transaction_tenant_date", "tenant_id", "transaction_date"),
        Index("idx_transaction_tenant_status", "tenant_id", "status"),
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        StrEnumType(TransactionType),
        nullable=False,
    )

    # Accounting date (drives period assignment and ledger entry dates)
    transaction_date: Mapped[date] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[TransactionStatus] = mapped_column(
        StrEnumType(TransactionStatus),
        default=TransactionStatus.DRAFT,
        nullable=False,
    )

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list["TransactionLine"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.line_seq",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.transaction_type.value} status={self.status.value}>"

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_draft(self) -> bool:
        return self.status == TransactionStatus.DRAFT

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.direction == Direction.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.direction == Direction.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        """Read-side convenience; the posting engine is the write-time guard."""
        return self.total_debits == self.total_credits


class TransactionLine(TenantScoped, TrackedBase):
    """
    One debit or credit line of a transaction.

    reverses_line_id is set only on lines built by the reversal engine and
    points at the original line being (partially) reversed.
    is_tax_line marks the tax line generated for a taxed net line; it carries
    the same tax_code, and its amount is the tax posted for that code.
    """

    __tablename__ = "transaction_lines"
    __table_args__ = (
        UniqueConstraint("transaction_id", "line_seq", name="uq_line_transaction_seq"),
        Index("idx_line_reverses", "reverses_line_id"),
        Index("idx_line_account", "account_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    direction: Mapped[Direction] = mapped_column(
        StrEnumType(Direction, length=10),
        nullable=False,
    )

    # Always positive, two decimal places
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    tax_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_tax_line: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    department: Mapped[str | None] = mapped_column(String(50), nullable=True)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reverses_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transaction_lines.id"),
        nullable=True,
    )

    transaction: Mapped[Transaction] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<TransactionLine {self.line_seq} {self.direction.value} {self.amount}>"
