"""
Reporting Module.

Trial balance, profit and loss and balance sheet derived from posted ledger
entries, filtered by account security level and optional department.
"""

from ledger_modules.reporting.config import ReportingConfig
from ledger_modules.reporting.models import (
    BalanceSheetReport,
    ProfitAndLossReport,
    ReportLine,
    ReportMetadata,
    ReportSection,
    ReportType,
    TrialBalanceReport,
)
from ledger_modules.reporting.service import ReportingService

__all__ = [
    "ReportingConfig",
    "BalanceSheetReport",
    "ProfitAndLossReport",
    "ReportLine",
    "ReportMetadata",
    "ReportSection",
    "ReportType",
    "TrialBalanceReport",
    "ReportingService",
]
