"""
DTOs -- immutable data transfer objects for the ledger kernel.

Services accept and return these frozen dataclasses, never ORM entities, so
callers cannot mutate persisted state behind the services' backs.
``from_model()`` class methods are the ORM-to-DTO boundary converters and are
only invoked from the service and selector layers.

Data flow:
    LineSpec -> TransactionLine (draft) -> LedgerEntry (posted)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.domain.amounts import to_decimal
from ledger_kernel.models.account import AccountType, NormalBalance, normal_balance_for
from ledger_kernel.models.fiscal_period import PeriodStatus
from ledger_kernel.models.reversal_link import ReversalKind
from ledger_kernel.models.transaction import (
    Direction,
    TransactionStatus,
    TransactionType,
)

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.fiscal_period import FiscalPeriod as FiscalPeriodModel
    from ledger_kernel.models.fiscal_period import FiscalYear as FiscalYearModel
    from ledger_kernel.models.reversal_link import ReversalLink as ReversalLinkModel
    from ledger_kernel.models.transaction import Transaction as TransactionModel
    from ledger_kernel.models.transaction import TransactionLine as TransactionLineModel


@dataclass(frozen=True)
class AccountInfo:
    """Read-only view of a chart of accounts entry."""

    id: UUID
    tenant_id: UUID
    code: str
    name: str
    account_type: AccountType
    is_active: bool
    security_level: int | None = None
    parent_id: UUID | None = None
    tax_default_code: str | None = None

    @property
    def normal_balance(self) -> NormalBalance:
        return normal_balance_for(self.account_type)

    @property
    def effective_security_level(self) -> int:
        """Null security level counts as 0 (visible to everyone)."""
        return self.security_level if self.security_level is not None else 0

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            is_active=model.is_active,
            security_level=model.security_level,
            parent_id=model.parent_id,
            tax_default_code=model.tax_default_code,
        )


@dataclass(frozen=True)
class PeriodInfo:
    id: UUID
    fiscal_year_id: UUID
    period_index: int
    period_code: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @classmethod
    def from_model(cls, model: FiscalPeriodModel) -> PeriodInfo:
        return cls(
            id=model.id,
            fiscal_year_id=model.fiscal_year_id,
            period_index=model.period_index,
            period_code=model.period_code,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=PeriodStatus(model.status),
        )


@dataclass(frozen=True)
class FiscalYearInfo:
    id: UUID
    label: str
    start_date: date
    end_date: date
    periods: tuple[PeriodInfo, ...]

    @classmethod
    def from_model(cls, model: FiscalYearModel) -> FiscalYearInfo:
        return cls(
            id=model.id,
            label=model.label,
            start_date=model.start_date,
            end_date=model.end_date,
            periods=tuple(
                PeriodInfo.from_model(p)
                for p in sorted(model.periods, key=lambda p: p.period_index)
            ),
        )


@dataclass(frozen=True)
class LineSpec:
    """
    Caller-supplied line for a draft transaction.

    Accounts are referenced by code; the amount is converted to Decimal on
    construction (floats are rejected).  Positivity and precision are checked
    when the line is added and again at posting.
    """

    account_code: str
    direction: Direction
    amount: Decimal
    tax_code: str | None = None
    department: str | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "direction", Direction(self.direction))

    @classmethod
    def debit(cls, account_code: str, amount: Decimal | str | int, **kwargs) -> LineSpec:
        return cls(account_code, Direction.DEBIT, amount, **kwargs)

    @classmethod
    def credit(cls, account_code: str, amount: Decimal | str | int, **kwargs) -> LineSpec:
        return cls(account_code, Direction.CREDIT, amount, **kwargs)


@dataclass(frozen=True)
class TransactionLineInfo:
    id: UUID
    line_seq: int
    account_id: UUID
    direction: Direction
    amount: Decimal
    tax_code: str | None = None
    department: str | None = None
    memo: str | None = None
    reverses_line_id: UUID | None = None
    is_tax_line: bool = False

    @classmethod
    def from_model(cls, model: TransactionLineModel) -> TransactionLineInfo:
        return cls(
            id=model.id,
            line_seq=model.line_seq,
            account_id=model.account_id,
            direction=Direction(model.direction),
            amount=model.amount,
            tax_code=model.tax_code,
            department=model.department,
            memo=model.memo,
            reverses_line_id=model.reverses_line_id,
            is_tax_line=model.is_tax_line,
        )


@dataclass(frozen=True)
class TransactionInfo:
    id: UUID
    tenant_id: UUID
    transaction_type: TransactionType
    transaction_date: date
    description: str
    status: TransactionStatus
    lines: tuple[TransactionLineInfo, ...]
    reference: str | None = None
    posted_at: datetime | None = None
    posted_by_id: UUID | None = None

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.direction == Direction.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (l.amount for l in self.lines if l.direction == Direction.CREDIT),
            Decimal("0"),
        )

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            transaction_type=TransactionType(model.transaction_type),
            transaction_date=model.transaction_date,
            description=model.description,
            status=TransactionStatus(model.status),
            lines=tuple(
                TransactionLineInfo.from_model(line)
                for line in sorted(model.lines, key=lambda l: l.line_seq)
            ),
            reference=model.reference,
            posted_at=model.posted_at,
            posted_by_id=model.posted_by_id,
        )


@dataclass(frozen=True)
class PostedResult:
    """Outcome of a successful posting."""

    transaction_id: UUID
    posted_at: datetime
    period_code: str
    ledger_entry_ids: tuple[UUID, ...]
    total_debits: Decimal
    total_credits: Decimal

    @property
    def entry_count(self) -> int:
        return len(self.ledger_entry_ids)


@dataclass(frozen=True)
class PartialReversalLine:
    """Reverse ``amount`` of the original line ``line_id``."""

    line_id: UUID
    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class ReversalInfo:
    id: UUID
    original_transaction_id: UUID
    reversing_transaction_id: UUID
    kind: ReversalKind
    reason: str | None = None

    @classmethod
    def from_model(cls, model: ReversalLinkModel) -> ReversalInfo:
        return cls(
            id=model.id,
            original_transaction_id=model.original_transaction_id,
            reversing_transaction_id=model.reversing_transaction_id,
            kind=ReversalKind(model.kind),
            reason=model.reason,
        )
