"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the per-tenant chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account code is unique per tenant and at most 7 characters.
    - code, account_type and parent_id are frozen once a ledger entry
      references the account (db/immutability.py).  name, is_active and
      security_level remain editable and never alter history.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import StrEnumType, TenantScoped, TrackedBase, UUIDString

ACCOUNT_CODE_MAX_LENGTH = 7


class AccountType(str, Enum):
    """Financial statement classification of an account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


_NORMAL_BALANCE = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.INCOME: NormalBalance.CREDIT,
}


def normal_balance_for(account_type: AccountType) -> NormalBalance:
    """Debit-normal for assets and expenses, credit-normal otherwise."""
    return _NORMAL_BALANCE[AccountType(account_type)]


class Account(TenantScoped, TrackedBase):
    """
    Chart of accounts entry.

    Accounts form a tree through parent_id.  A null security_level means
    the account is visible to everyone (effective level 0).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
    )

    code: Mapped[str] = mapped_column(
        String(ACCOUNT_CODE_MAX_LENGTH),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        StrEnumType(AccountType),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Null means visible at every clearance
    security_level: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    tax_default_code: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def effective_security_level(self) -> int:
        return self.security_level if self.security_level is not None else 0
