"""
ledger_services.orchestrator -- caller-facing facade over the ledger.

Responsibility:
    Wires every kernel and module service for one session (``LedgerServices``)
    and exposes the caller-facing operations (``LedgerOrchestrator``), each
    running in its own unit of work: commit on success, rollback on any
    exception.

Architecture position:
    Services -- top of the stack.  Imports ``ledger_kernel``,
    ``ledger_modules`` and ``ledger_config`` settings types; nothing imports
    this package back.

Invariants enforced:
    - Single-instance lifecycle: within one unit of work every service is
      created once and all share the same Session, Clock and audit sink.
    - One ``session_scope`` per public call: a rejected posting or reversal
      leaves nothing behind, not even its audit event.

Failure modes:
    - Typed ``LedgerKernelError`` subclasses propagate unchanged after the
      rollback.

Usage:
    settings = get_active_config()
    init_engine_from_url(settings.database.url)
    create_all_tables()

    ledger = LedgerOrchestrator(get_session_factory(), settings)
    draft = ledger.create_draft(tenant_id, TransactionType.PAYMENT,
                                date(2024, 3, 1), "Office rent", actor_id,
                                lines=[LineSpec.debit("5000", "100.00"),
                                       LineSpec.credit("1000", "100.00")])
    result = ledger.post(tenant_id, draft.id, actor_id)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    FiscalYearInfo,
    LineSpec,
    PartialReversalLine,
    PeriodInfo,
    PostedResult,
    ReversalInfo,
    TransactionInfo,
    TransactionLineInfo,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.transaction import TransactionType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.reversal_service import ReversalDatePolicy, ReversalService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_modules.reporting.models import (
    BalanceSheetReport,
    ProfitAndLossReport,
    TrialBalanceReport,
)
from ledger_modules.reporting.service import ReportingService
from ledger_modules.tax.models import TaxCodeInfo, TaxSummary
from ledger_modules.tax.service import TaxCodeService, TaxService

logger = get_logger("services.orchestrator")

T = TypeVar("T")


class LedgerServices:
    """Every service for one session, created once in dependency order.

    Non-goals:
        - Does NOT manage transaction boundaries.
    """

    def __init__(self, session: Session, settings: LedgerSettings, clock: Clock) -> None:
        self.session = session

        # Foundational
        self.auditor = AuditorService(session, clock)
        self.accounts = AccountService(session, self.auditor)
        self.periods = PeriodService(session, clock, self.auditor)

        # Transaction lifecycle
        self.transactions = TransactionService(session, clock, self.auditor)
        self.posting = PostingService(session, clock, self.auditor)
        self.reversals = ReversalService(
            session,
            clock,
            self.auditor,
            date_policy=ReversalDatePolicy(settings.reversal.date_policy),
        )

        # Modules
        self.tax_codes = TaxCodeService(session, clock, self.auditor)
        self.tax = TaxService(session, clock, self.auditor)
        self.reporting = ReportingService(session, clock, settings.reporting)


class LedgerOrchestrator:
    """
    Caller-facing ledger operations, one unit of work per call.

    Contract:
        Receives a session factory, the active settings and an optional
        clock.  Each method opens a session, wires ``LedgerServices``, runs
        the operation and commits; on any exception it rolls back and
        re-raises.  Return values are frozen DTOs, safe to use after the
        session is closed.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def run(
        self,
        operation: Callable[[LedgerServices], T],
        tenant_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> T:
        """Run ``operation`` against freshly wired services in one unit of work."""
        with LogContext.bind(
            correlation_id=LogContext.get_all().get("correlation_id") or uuid4(),
            tenant_id=tenant_id,
            actor_id=actor_id,
        ):
            with session_scope(self._session_factory) as session:
                return operation(LedgerServices(session, self._settings, self._clock))

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        **kwargs,
    ) -> AccountInfo:
        return self.run(
            lambda s: s.accounts.create_account(
                tenant_id, code, name, account_type, actor_id, **kwargs
            ),
            tenant_id,
            actor_id,
        )

    def create_fiscal_year(
        self,
        tenant_id: UUID,
        label: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        period_months: int = 1,
    ) -> FiscalYearInfo:
        return self.run(
            lambda s: s.periods.create_fiscal_year(
                tenant_id, label, start_date, end_date, actor_id, period_months
            ),
            tenant_id,
            actor_id,
        )

    def lock_period(self, tenant_id: UUID, period_code: str, actor_id: UUID) -> PeriodInfo:
        return self.run(
            lambda s: s.periods.lock_period(tenant_id, period_code, actor_id),
            tenant_id,
            actor_id,
        )

    def reopen_period(self, tenant_id: UUID, period_code: str, actor_id: UUID) -> PeriodInfo:
        return self.run(
            lambda s: s.periods.reopen_period(tenant_id, period_code, actor_id),
            tenant_id,
            actor_id,
        )

    def create_default_tax_codes(self, tenant_id: UUID, actor_id: UUID) -> list[TaxCodeInfo]:
        """Seed the tax codes configured under ``tax.default_codes``."""
        return self.run(
            lambda s: s.tax_codes.create_default_tax_codes(
                tenant_id, actor_id, self._settings.tax.default_codes
            ),
            tenant_id,
            actor_id,
        )

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(
        self,
        tenant_id: UUID,
        transaction_type: TransactionType,
        transaction_date: date,
        description: str,
        actor_id: UUID,
        lines: Iterable[LineSpec] = (),
        reference: str | None = None,
    ) -> TransactionInfo:
        lines = tuple(lines)
        return self.run(
            lambda s: s.transactions.create_draft(
                tenant_id,
                transaction_type,
                transaction_date,
                description,
                actor_id,
                lines=lines,
                reference=reference,
            ),
            tenant_id,
            actor_id,
        )

    def add_line(
        self, tenant_id: UUID, transaction_id: UUID, spec: LineSpec, actor_id: UUID
    ) -> TransactionLineInfo:
        return self.run(
            lambda s: s.transactions.add_line(tenant_id, transaction_id, spec, actor_id),
            tenant_id,
            actor_id,
        )

    def add_taxed_line(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        spec: LineSpec,
        tax_account_code: str,
        actor_id: UUID,
        amount_includes_tax: bool = False,
    ) -> tuple[TransactionLineInfo, TransactionLineInfo | None]:
        return self.run(
            lambda s: s.tax.add_taxed_line(
                tenant_id,
                transaction_id,
                spec,
                tax_account_code,
                actor_id,
                amount_includes_tax=amount_includes_tax,
            ),
            tenant_id,
            actor_id,
        )

    def delete_draft(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> None:
        self.run(
            lambda s: s.transactions.delete_draft(tenant_id, transaction_id, actor_id),
            tenant_id,
            actor_id,
        )

    def get_transaction(self, tenant_id: UUID, transaction_id: UUID) -> TransactionInfo:
        return self.run(lambda s: s.transactions.get(tenant_id, transaction_id), tenant_id)

    # ------------------------------------------------------------------
    # Posting and reversal
    # ------------------------------------------------------------------

    def post(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> PostedResult:
        return self.run(
            lambda s: s.posting.post(tenant_id, transaction_id, actor_id),
            tenant_id,
            actor_id,
        )

    def reverse(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        reversal_date: date | None = None,
        post: bool = False,
    ) -> TransactionInfo:
        """
        Draft a full reversal; with ``post=True`` post it in the same unit
        of work, so the reversal is either fully posted or not created.
        """

        def operation(s: LedgerServices) -> TransactionInfo:
            draft = s.reversals.reverse(tenant_id, transaction_id, actor_id, reason, reversal_date)
            if post:
                s.posting.post(tenant_id, draft.id, actor_id)
                return s.transactions.get(tenant_id, draft.id)
            return draft

        return self.run(operation, tenant_id, actor_id)

    def reverse_partial(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        lines: Sequence[PartialReversalLine],
        reason: str | None = None,
        reversal_date: date | None = None,
        post: bool = False,
    ) -> TransactionInfo:
        lines = tuple(lines)

        def operation(s: LedgerServices) -> TransactionInfo:
            draft = s.reversals.reverse_partial(
                tenant_id, transaction_id, actor_id, lines, reason, reversal_date
            )
            if post:
                s.posting.post(tenant_id, draft.id, actor_id)
                return s.transactions.get(tenant_id, draft.id)
            return draft

        return self.run(operation, tenant_id, actor_id)

    def remaining_balance(self, tenant_id: UUID, transaction_id: UUID) -> dict[UUID, Decimal]:
        return self.run(
            lambda s: s.reversals.remaining_balance(tenant_id, transaction_id), tenant_id
        )

    def reversals_of(self, tenant_id: UUID, transaction_id: UUID) -> list[ReversalInfo]:
        return self.run(lambda s: s.reversals.reversals_of(tenant_id, transaction_id), tenant_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def trial_balance(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> TrialBalanceReport:
        return self.run(
            lambda s: s.reporting.trial_balance(
                tenant_id, start_date, end_date, max_security_level, department
            ),
            tenant_id,
        )

    def profit_and_loss(
        self,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> ProfitAndLossReport:
        return self.run(
            lambda s: s.reporting.profit_and_loss(
                tenant_id, start_date, end_date, max_security_level, department
            ),
            tenant_id,
        )

    def balance_sheet(
        self,
        tenant_id: UUID,
        as_of_date: date,
        max_security_level: int,
        department: str | None = None,
    ) -> BalanceSheetReport:
        return self.run(
            lambda s: s.reporting.balance_sheet(
                tenant_id, as_of_date, max_security_level, department
            ),
            tenant_id,
        )

    def tax_summary(self, tenant_id: UUID, start_date: date, end_date: date) -> TaxSummary:
        return self.run(lambda s: s.tax.tax_summary(tenant_id, start_date, end_date), tenant_id)
