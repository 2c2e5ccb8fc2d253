"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.audit_event import AuditEvent, AuditEventType
from ledger_kernel.models.fiscal_period import FiscalPeriod, FiscalYear, PeriodStatus
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.reversal_link import ReversalKind, ReversalLink
from ledger_kernel.models.transaction import (
    Direction,
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "AuditEvent",
    "AuditEventType",
    "FiscalYear",
    "FiscalPeriod",
    "PeriodStatus",
    "LedgerEntry",
    "ReversalKind",
    "ReversalLink",
    "Direction",
    "Transaction",
    "TransactionLine",
    "TransactionStatus",
    "TransactionType",
]
