"""
Pure financial statement transformation functions.

These functions turn per-account activity rows and account metadata into
the trial balance, profit and loss and balance sheet.  ZERO I/O. ZERO side
effects.

- No database access
- No clock access
- Deterministic: same inputs always produce same outputs

Rows for accounts missing from ``accounts`` (unknown, or above the caller's
security level) contribute nothing.
"""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.selectors.ledger_selector import AccountActivityRow
from ledger_modules.reporting.config import ReportingConfig
from ledger_modules.reporting.models import (
    BalanceSheetReport,
    ProfitAndLossReport,
    ReportLine,
    ReportMetadata,
    ReportSection,
    TrialBalanceReport,
)

_ZERO = Decimal("0.00")


# =========================================================================
# Helpers
# =========================================================================


def compute_natural_balance(
    debit_total: Decimal,
    credit_total: Decimal,
    normal_balance: NormalBalance,
) -> Decimal:
    """
    Compute balance adjusted for normal balance side.

    DEBIT-normal (ASSET, EXPENSE): balance = debit_total - credit_total
    CREDIT-normal (LIABILITY, EQUITY, INCOME): balance = credit_total - debit_total
    """
    if normal_balance == NormalBalance.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


def build_report_lines(
    rows: list[AccountActivityRow],
    accounts: dict[UUID, AccountInfo],
    config: ReportingConfig,
) -> tuple[ReportLine, ...]:
    """
    One line per visible account, sorted by account code.

    Accounts without activity appear only with ``include_zero_balances``.
    """
    by_account = {row.account_id: row for row in rows}
    items: list[ReportLine] = []
    for account_id, acct in accounts.items():
        row = by_account.get(account_id)
        debit_total = row.debit_total if row is not None else _ZERO
        credit_total = row.credit_total if row is not None else _ZERO
        if not config.include_zero_balances and debit_total == 0 and credit_total == 0:
            continue
        items.append(
            ReportLine(
                account_id=account_id,
                account_code=acct.code,
                account_name=acct.name,
                account_type=acct.account_type.value,
                debit_total=debit_total,
                credit_total=credit_total,
                net_balance=compute_natural_balance(
                    debit_total, credit_total, acct.normal_balance
                ),
            )
        )
    return tuple(sorted(items, key=lambda x: x.account_code))


def compute_net_income(
    rows: list[AccountActivityRow],
    accounts: dict[UUID, AccountInfo],
) -> Decimal:
    """
    Net income = sum(INCOME natural balances) - sum(EXPENSE natural balances).
    """
    income = _ZERO
    expense = _ZERO
    for row in rows:
        acct = accounts.get(row.account_id)
        if acct is None:
            continue
        natural = compute_natural_balance(row.debit_total, row.credit_total, acct.normal_balance)
        if acct.account_type == AccountType.INCOME:
            income += natural
        elif acct.account_type == AccountType.EXPENSE:
            expense += natural
    return income - expense


def _make_section(label: str, lines: list[ReportLine], include_zero: bool) -> ReportSection:
    kept = tuple(l for l in lines if include_zero or l.net_balance != 0)
    return ReportSection(
        label=label,
        lines=kept,
        total=sum((l.net_balance for l in kept), _ZERO),
    )


def _of_type(items: tuple[ReportLine, ...], account_type: AccountType) -> list[ReportLine]:
    return [item for item in items if item.account_type == account_type.value]


# =========================================================================
# 1. TRIAL BALANCE
# =========================================================================


def build_trial_balance(
    rows: list[AccountActivityRow],
    accounts: dict[UUID, AccountInfo],
    config: ReportingConfig,
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    items = build_report_lines(rows, accounts, config)
    total_debits = sum((item.debit_total for item in items), _ZERO)
    total_credits = sum((item.credit_total for item in items), _ZERO)
    return TrialBalanceReport(
        metadata=metadata,
        lines=items,
        total_debits=total_debits,
        total_credits=total_credits,
        is_balanced=(total_debits == total_credits),
    )


# =========================================================================
# 2. PROFIT AND LOSS
# =========================================================================


def build_profit_and_loss(
    rows: list[AccountActivityRow],
    accounts: dict[UUID, AccountInfo],
    config: ReportingConfig,
    metadata: ReportMetadata,
) -> ProfitAndLossReport:
    items = build_report_lines(rows, accounts, config)
    income = _make_section("Income", _of_type(items, AccountType.INCOME), config.include_zero_balances)
    expenses = _make_section(
        "Expenses", _of_type(items, AccountType.EXPENSE), config.include_zero_balances
    )
    return ProfitAndLossReport(
        metadata=metadata,
        income=income,
        expenses=expenses,
        total_income=income.total,
        total_expenses=expenses.total,
        net_profit=income.total - expenses.total,
    )


# =========================================================================
# 3. BALANCE SHEET
# =========================================================================


def build_balance_sheet(
    rows: list[AccountActivityRow],
    accounts: dict[UUID, AccountInfo],
    config: ReportingConfig,
    metadata: ReportMetadata,
) -> BalanceSheetReport:
    """
    Balance sheet from inception-to-date rows.

    Income and expense accounts are not closed into retained earnings by
    the ledger, so their net is shown as a synthetic current earnings line
    in equity.
    """
    items = build_report_lines(rows, accounts, config)
    current_earnings = compute_net_income(rows, accounts)

    assets = _make_section("Assets", _of_type(items, AccountType.ASSET), config.include_zero_balances)
    liabilities = _make_section(
        "Liabilities", _of_type(items, AccountType.LIABILITY), config.include_zero_balances
    )

    equity_lines = _of_type(items, AccountType.EQUITY)
    if current_earnings != 0 or config.include_zero_balances:
        equity_lines.append(
            ReportLine(
                account_id=None,
                account_code="",
                account_name=config.current_earnings_label,
                account_type=AccountType.EQUITY.value,
                debit_total=max(-current_earnings, _ZERO),
                credit_total=max(current_earnings, _ZERO),
                net_balance=current_earnings,
            )
        )
    equity = _make_section("Equity", equity_lines, config.include_zero_balances)

    total_liabilities_and_equity = liabilities.total + equity.total
    return BalanceSheetReport(
        metadata=metadata,
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        current_earnings=current_earnings,
        total_assets=assets.total,
        total_liabilities=liabilities.total,
        total_equity=equity.total,
        total_liabilities_and_equity=total_liabilities_and_equity,
        is_balanced=(assets.total == total_liabilities_and_equity),
    )


# =========================================================================
# Serialization
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | bool | None:
    """
    Convert a report DTO tree to JSON-ready primitives.

    Decimal -> str, date -> ISO string, UUID -> str, Enum -> value.
    """
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (tuple, list)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj):
        return {f.name: render_to_dict(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    raise TypeError(f"Cannot render {type(obj).__name__}")
