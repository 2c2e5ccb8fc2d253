"""
Financial Reporting Domain Models (``ledger_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects for the trial balance, profit and loss and
balance sheet.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by the
pure functions in ``statements.py`` and returned by ``ReportingService``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ReportType(str, Enum):
    """Types of financial reports."""

    TRIAL_BALANCE = "trial_balance"
    PROFIT_AND_LOSS = "profit_and_loss"
    BALANCE_SHEET = "balance_sheet"


@dataclass(frozen=True)
class ReportMetadata:
    """Parameters a report was generated with, for reproducibility."""

    report_type: ReportType
    tenant_id: UUID
    as_of_date: date
    generated_at: str  # ISO format timestamp from injected clock
    max_security_level: int
    period_start: date | None = None
    period_end: date | None = None
    department: str | None = None


@dataclass(frozen=True)
class ReportLine:
    """
    One account on a report.

    ``net_balance`` is natural-balance adjusted: positive when the account
    sits on its normal side.  ``account_id`` is None for synthetic lines.
    """

    account_id: UUID | None
    account_code: str
    account_name: str
    account_type: str  # "asset", "liability", "equity", "income", "expense"
    debit_total: Decimal
    credit_total: Decimal
    net_balance: Decimal

    @property
    def net_debit(self) -> Decimal:
        """Debit column of a net trial balance."""
        return max(self.debit_total - self.credit_total, Decimal("0"))

    @property
    def net_credit(self) -> Decimal:
        """Credit column of a net trial balance."""
        return max(self.credit_total - self.debit_total, Decimal("0"))


@dataclass(frozen=True)
class TrialBalanceReport:
    metadata: ReportMetadata
    lines: tuple[ReportLine, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool  # total_debits == total_credits


@dataclass(frozen=True)
class ReportSection:
    """A section of a statement (e.g., Income, Liabilities)."""

    label: str
    lines: tuple[ReportLine, ...]
    total: Decimal


@dataclass(frozen=True)
class ProfitAndLossReport:
    """Income (credit-normal) less expenses (debit-normal) over a range."""

    metadata: ReportMetadata
    income: ReportSection
    expenses: ReportSection
    total_income: Decimal
    total_expenses: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Balance sheet as of a date.

    ``equity`` includes a synthetic current earnings line (net income to
    date), so Assets = Liabilities + Equity holds when every account is
    visible.
    """

    metadata: ReportMetadata
    assets: ReportSection
    liabilities: ReportSection
    equity: ReportSection
    current_earnings: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal
    is_balanced: bool  # total_assets == total_liabilities_and_equity
