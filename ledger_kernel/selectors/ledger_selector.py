"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only queries over ledger entries: per-account activity
    for statements, per-tax-code activity for tax returns, entry listings,
    and the net amount already reversed against transaction lines.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ledger entries exist only for POSTED transactions, so every total
      here covers posted activity only.
    - Nothing is stored: balances are recomputed from entries each time.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.transaction import Transaction, TransactionLine, TransactionStatus
from ledger_kernel.selectors.base import BaseSelector

_CENT = Decimal("0.01")


def _money(total) -> Decimal:
    return Decimal(total or 0).quantize(_CENT)


@dataclass(frozen=True)
class AccountActivityRow:
    """Debit and credit totals of one account over a date range."""

    account_id: UUID
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TaxActivityRow:
    """Base and posted tax per side for one tax code; entry_count counts base entries."""

    tax_code: str
    debit_total: Decimal
    credit_total: Decimal
    tax_debit_total: Decimal
    tax_credit_total: Decimal
    entry_count: int


@dataclass(frozen=True)
class LedgerLine:
    id: UUID
    transaction_id: UUID
    transaction_line_id: UUID
    line_seq: int
    entry_date: date
    account_id: UUID
    amount_dr: Decimal
    amount_cr: Decimal
    tax_code: str | None
    department: str | None
    is_tax_line: bool = False

    @classmethod
    def from_model(cls, model: LedgerEntry) -> "LedgerLine":
        return cls(
            id=model.id,
            transaction_id=model.transaction_id,
            transaction_line_id=model.transaction_line_id,
            line_seq=model.line_seq,
            entry_date=model.entry_date,
            account_id=model.account_id,
            amount_dr=model.amount_dr,
            amount_cr=model.amount_cr,
            tax_code=model.tax_code,
            department=model.department,
            is_tax_line=model.is_tax_line,
        )


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Selector for general ledger queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def account_activity(
        self,
        tenant_id: UUID,
        start_date: date | None,
        end_date: date,
        department: str | None = None,
    ) -> list[AccountActivityRow]:
        """
        Per-account debit/credit totals for entries dated in
        [start_date, end_date].  ``start_date=None`` means "since inception"
        (balance sheet).  Accounts without entries are absent.
        """
        stmt = (
            select(
                LedgerEntry.account_id,
                func.sum(LedgerEntry.amount_dr),
                func.sum(LedgerEntry.amount_cr),
            )
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.entry_date <= end_date,
            )
            .group_by(LedgerEntry.account_id)
        )
        if start_date is not None:
            stmt = stmt.where(LedgerEntry.entry_date >= start_date)
        if department is not None:
            stmt = stmt.where(LedgerEntry.department == department)

        return [
            AccountActivityRow(
                account_id=account_id,
                debit_total=Decimal(debits or 0),
                credit_total=Decimal(credits or 0),
            )
            for account_id, debits, credits in self.session.execute(stmt)
        ]

    def tax_activity(self, tenant_id: UUID, start_date: date, end_date: date) -> list[TaxActivityRow]:
        """
        Debit/credit totals per tax code for entries carrying a tax code.

        Base entries and generated tax entries are summed apart, so the tax
        side is what was actually posted rather than a recomputation.
        """
        is_base = LedgerEntry.is_tax_line.is_(False)
        is_tax = LedgerEntry.is_tax_line.is_(True)
        stmt = (
            select(
                LedgerEntry.tax_code,
                func.sum(case((is_base, LedgerEntry.amount_dr), else_=0)),
                func.sum(case((is_base, LedgerEntry.amount_cr), else_=0)),
                func.sum(case((is_tax, LedgerEntry.amount_dr), else_=0)),
                func.sum(case((is_tax, LedgerEntry.amount_cr), else_=0)),
                func.count(case((is_base, LedgerEntry.id))),
            )
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.entry_date >= start_date,
                LedgerEntry.entry_date <= end_date,
                LedgerEntry.tax_code.is_not(None),
            )
            .group_by(LedgerEntry.tax_code)
            .order_by(LedgerEntry.tax_code)
        )
        return [
            TaxActivityRow(
                tax_code=code,
                debit_total=_money(debits),
                credit_total=_money(credits),
                tax_debit_total=_money(tax_debits),
                tax_credit_total=_money(tax_credits),
                entry_count=count,
            )
            for code, debits, credits, tax_debits, tax_credits, count in self.session.execute(stmt)
        ]

    def entries_for_transaction(self, tenant_id: UUID, transaction_id: UUID) -> list[LedgerLine]:
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.transaction_id == transaction_id,
            )
            .order_by(LedgerEntry.line_seq)
        )
        return [LedgerLine.from_model(e) for e in self.session.execute(stmt).scalars()]

    def account_ledger(
        self,
        tenant_id: UUID,
        account_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerLine]:
        """Entries of one account in date order."""
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.account_id == account_id,
            )
            .order_by(LedgerEntry.entry_date, LedgerEntry.transaction_id, LedgerEntry.line_seq)
        )
        if start_date is not None:
            stmt = stmt.where(LedgerEntry.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerEntry.entry_date <= end_date)
        return [LedgerLine.from_model(e) for e in self.session.execute(stmt).scalars()]

    def count_entries(self, tenant_id: UUID, transaction_id: UUID | None = None) -> int:
        stmt = select(func.count(LedgerEntry.id)).where(LedgerEntry.tenant_id == tenant_id)
        if transaction_id is not None:
            stmt = stmt.where(LedgerEntry.transaction_id == transaction_id)
        return self.session.execute(stmt).scalar_one()

    def net_reversed_amounts(
        self, tenant_id: UUID, line_ids: list[UUID] | set[UUID]
    ) -> dict[UUID, Decimal]:
        """
        Net amount already reversed against each original line.

        A posted reversing line R of line L counts R.amount minus whatever
        has in turn been reversed against R, so voiding a reversal restores
        the original line's remaining balance.  Draft reversals do not count.
        """
        children: dict[UUID, list[tuple[UUID, Decimal]]] = defaultdict(list)
        frontier = set(line_ids)
        seen: set[UUID] = set(frontier)

        while frontier:
            rows = self.session.execute(
                select(
                    TransactionLine.id,
                    TransactionLine.reverses_line_id,
                    TransactionLine.amount,
                )
                .join(Transaction, TransactionLine.transaction_id == Transaction.id)
                .where(
                    Transaction.tenant_id == tenant_id,
                    Transaction.status == TransactionStatus.POSTED,
                    TransactionLine.reverses_line_id.in_(frontier),
                )
            ).all()
            frontier = set()
            for line_id, parent_id, amount in rows:
                children[parent_id].append((line_id, amount))
                if line_id not in seen:
                    seen.add(line_id)
                    frontier.add(line_id)

        memo: dict[UUID, Decimal] = {}

        def net(line_id: UUID) -> Decimal:
            if line_id not in memo:
                memo[line_id] = sum(
                    (amount - net(child_id) for child_id, amount in children[line_id]),
                    Decimal("0"),
                )
            return memo[line_id]

        return {line_id: net(line_id) for line_id in line_ids}
