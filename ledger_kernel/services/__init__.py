"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService, AuditSink, AuditTrace
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.reversal_service import (
    ReversalDatePolicy,
    ReversalService,
    partial_reversal_type,
)
from ledger_kernel.services.transaction_service import TransactionService

__all__ = [
    "AccountService",
    "AuditorService",
    "AuditSink",
    "AuditTrace",
    "PeriodService",
    "PostingService",
    "ReversalDatePolicy",
    "ReversalService",
    "TransactionService",
    "partial_reversal_type",
]
