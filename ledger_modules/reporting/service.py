"""
Reporting Service -- financial statements from posted ledger entries.

Responsibility:
    Loads the caller-visible accounts and per-account activity, then
    delegates to the pure functions in ``statements.py``.

Architecture:
    ledger_modules -- modules layer.  Reads through ``AccountService`` and
    ``LedgerSelector``; never writes.

Invariants:
    - Only accounts with effective security level <= ``max_security_level``
      appear; their activity is the only activity counted.
    - Ledger entries exist only for POSTED transactions, so drafts never
      reach a report.
    - Any range, including an empty one, yields a well-formed report; the
      trial balance and balance sheet balance whenever every account with
      activity is visible.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_modules.reporting.config import ReportingConfig
from ledger_modules.reporting.models import (
    BalanceSheetReport,
    ProfitAndLossReport,
    ReportMetadata,
    ReportType,
    TrialBalanceReport,
)
from ledger_modules.reporting.statements import (
    build_balance_sheet,
    build_profit_and_loss,
    build_trial_balance,
    render_to_dict,
)

logger = get_logger("modules.reporting.service")


class ReportingService:
    """
    Financial statement generation service.

    Contract
    --------
    * Every public method returns a frozen report DTO.
    * All methods are **read-only** -- no mutations to the database.

    Non-goals
    ---------
    * Does NOT resolve the caller's security level; it is a trusted input.
    * Does NOT enforce fiscal-period locks (read-only service).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ReportingConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ReportingConfig.with_defaults()
        self._accounts = AccountService(session)
        self._ledger = LedgerSelector(session)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _visible_accounts(self, tenant_id: UUID, max_security_level: int) -> dict[UUID, AccountInfo]:
        accounts = self._accounts.list_accounts(
            tenant_id,
            max_security_level=max_security_level,
            active_only=not self._config.include_inactive,
        )
        logger.debug(
            "accounts_loaded_for_reporting",
            extra={"account_count": len(accounts), "max_security_level": max_security_level},
        )
        return {a.id: a for a in accounts}

    def _build_metadata(
        self,
        report_type: ReportType,
        tenant_id: UUID,
        as_of_date: date,
        max_security_level: int,
        period_start: date | None = None,
        department: str | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            tenant_id=tenant_id,
            as_of_date=as_of_date,
            generated_at=self._clock.now().isoformat(),
            max_security_level=max_security_level,
            period_start=period_start,
            period_end=as_of_date,
            department=department,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def trial_balance(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> TrialBalanceReport:
        """
        Debit and credit activity per visible account in [start_date, end_date].
        """
        accounts = self._visible_accounts(tenant_id, max_security_level)
        rows = self._ledger.account_activity(tenant_id, start_date, end_date, department)
        metadata = self._build_metadata(
            ReportType.TRIAL_BALANCE, tenant_id, end_date, max_security_level,
            period_start=start_date, department=department,
        )
        report = build_trial_balance(rows, accounts, self._config, metadata)

        logger.info(
            "trial_balance_generated",
            extra={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "line_count": len(report.lines),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def profit_and_loss(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> ProfitAndLossReport:
        """Income less expenses for entries dated in [start_date, end_date]."""
        accounts = self._visible_accounts(tenant_id, max_security_level)
        rows = self._ledger.account_activity(tenant_id, start_date, end_date, department)
        metadata = self._build_metadata(
            ReportType.PROFIT_AND_LOSS, tenant_id, end_date, max_security_level,
            period_start=start_date, department=department,
        )
        report = build_profit_and_loss(rows, accounts, self._config, metadata)

        logger.info(
            "profit_and_loss_generated",
            extra={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "net_profit": str(report.net_profit),
            },
        )
        return report

    def balance_sheet(
        self,
        tenant_id: UUID,
        as_of_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> BalanceSheetReport:
        """Balances of visible accounts from inception to ``as_of_date``."""
        accounts = self._visible_accounts(tenant_id, max_security_level)
        rows = self._ledger.account_activity(tenant_id, None, as_of_date, department)
        metadata = self._build_metadata(
            ReportType.BALANCE_SHEET, tenant_id, as_of_date, max_security_level,
            department=department,
        )
        report = build_balance_sheet(rows, accounts, self._config, metadata)

        logger.info(
            "balance_sheet_generated",
            extra={
                "as_of_date": as_of_date.isoformat(),
                "total_assets": str(report.total_assets),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def to_dict(self, report: object) -> dict:
        """Serialize a report to JSON-ready primitives."""
        return render_to_dict(report)
