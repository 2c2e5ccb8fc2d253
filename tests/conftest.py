"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A fresh database per test (SQLite in memory by default)
- Service fixtures sharing one session, clock and audit sink
- A standard chart of accounts, an open FY2024 calendar and default tax codes
- Structured log capture

Environment Variables:
- LEDGER_TEST_DATABASE_URL: database URL for the suite.  Defaults to
  ``sqlite:///:memory:``.  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from collections.abc import Callable, Generator, Iterable
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_kernel.db.engine import (
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import AccountInfo, FiscalYearInfo, LineSpec, PostedResult, TransactionInfo
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.transaction import TransactionType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.transaction_service import TransactionService
from ledger_modules._orm_registry import create_all_tables
from ledger_modules.reporting.service import ReportingService
from ledger_modules.tax.service import TaxCodeService, TaxService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_TEST_DATABASE_URL = "sqlite:///:memory:"

# A date well inside the open FY2024 calendar
TEST_DATE = date(2024, 3, 15)


def get_database_url() -> str:
    return os.environ.get("LEDGER_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _structured_logging():
    """JSON logs on stderr at WARNING; captured_logs lowers the level per test."""
    reset_logging()
    configure_logging(level=logging.WARNING)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


class _JSONRecorder(logging.Handler):
    """Keeps every record as the dict the StructuredFormatter would emit."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.records: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(json.loads(self.format(record)))


@pytest.fixture
def captured_logs():
    """
    Records from the ``ledger_kernel`` namespace, parsed from JSON.

        def test_rejection_logged(captured_logs, posting_service):
            ...
            assert captured_logs()[-1]["message"] == "posting_rejected"
    """
    recorder = _JSONRecorder()
    namespace = logging.getLogger("ledger_kernel")
    previous_level = namespace.level
    namespace.setLevel(logging.DEBUG)
    namespace.addHandler(recorder)

    yield lambda: list(recorder.records)

    namespace.removeHandler(recorder)
    namespace.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """Engine with freshly created tables and immutability listeners."""
    eng = init_engine_from_url(get_database_url())
    drop_tables()
    create_all_tables()
    register_immutability_listeners()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session whose work is never committed; services only flush."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for tests that need real commits (orchestrator)."""
    return get_session_factory()


# =============================================================================
# Identity and clock
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock():
    """Clock fixed inside FY2024 so CURRENT_DATE reversals land in an open period."""
    return DeterministicClock(datetime(2024, 6, 10, 9, 30, 0, tzinfo=timezone.utc))


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def auditor_service(session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def account_service(session, auditor_service):
    return AccountService(session, auditor_service)


@pytest.fixture
def period_service(session, deterministic_clock, auditor_service):
    return PeriodService(session, deterministic_clock, auditor_service)


@pytest.fixture
def transaction_service(session, deterministic_clock, auditor_service):
    return TransactionService(session, deterministic_clock, auditor_service)


@pytest.fixture
def posting_service(session, deterministic_clock, auditor_service):
    return PostingService(session, deterministic_clock, auditor_service)


@pytest.fixture
def reversal_service(session, deterministic_clock, auditor_service):
    return ReversalService(session, deterministic_clock, auditor_service)


@pytest.fixture
def tax_code_service(session, deterministic_clock, auditor_service):
    return TaxCodeService(session, deterministic_clock, auditor_service)


@pytest.fixture
def tax_service(session, deterministic_clock, auditor_service):
    return TaxService(session, deterministic_clock, auditor_service)


@pytest.fixture
def reporting_service(session, deterministic_clock):
    return ReportingService(session, deterministic_clock)


@pytest.fixture
def ledger_selector(session):
    return LedgerSelector(session)


# =============================================================================
# Reference data
# =============================================================================


STANDARD_CHART = (
    # code, name, type, security level, default tax code
    ("1000", "Bank", AccountType.ASSET, None, None),
    ("1200", "Accounts Receivable", AccountType.ASSET, None, None),
    ("2000", "Accounts Payable", AccountType.LIABILITY, None, None),
    ("2200", "GST Payable", AccountType.LIABILITY, None, None),
    ("3000", "Owner Equity", AccountType.EQUITY, None, None),
    ("4000", "Sales", AccountType.INCOME, None, "GST"),
    ("5000", "Rent", AccountType.EXPENSE, None, "GST"),
    ("5100", "Salaries", AccountType.EXPENSE, 5, None),
)


def create_chart(
    account_service: AccountService, tenant_id: UUID, actor_id: UUID
) -> dict[str, AccountInfo]:
    return {
        code: account_service.create_account(
            tenant_id,
            code,
            name,
            account_type,
            actor_id,
            security_level=security_level,
            tax_default_code=tax_code,
        )
        for code, name, account_type, security_level, tax_code in STANDARD_CHART
    }


@pytest.fixture
def standard_accounts(account_service, tenant_id, test_actor_id) -> dict[str, AccountInfo]:
    """The standard chart of accounts keyed by account code."""
    return create_chart(account_service, tenant_id, test_actor_id)


@pytest.fixture
def fiscal_year(period_service, tenant_id, test_actor_id) -> FiscalYearInfo:
    """FY2024, twelve monthly OPEN periods FY2024-01 .. FY2024-12."""
    return period_service.create_fiscal_year(
        tenant_id, "FY2024", date(2024, 1, 1), date(2024, 12, 31), test_actor_id
    )


@pytest.fixture
def tax_codes(tax_code_service, tenant_id, test_actor_id):
    """GST 15%, ZERO, EXEMPT and N/A."""
    return {
        c.code: c for c in tax_code_service.create_default_tax_codes(tenant_id, test_actor_id)
    }


@pytest.fixture
def ledger(standard_accounts, fiscal_year, tax_codes):
    """Everything a posting needs: accounts, open periods and tax codes."""
    return standard_accounts


@pytest.fixture
def create_draft(transaction_service, tenant_id, test_actor_id) -> Callable[..., TransactionInfo]:
    def _create(
        lines: Iterable[LineSpec],
        transaction_date: date = TEST_DATE,
        transaction_type: TransactionType = TransactionType.JOURNAL,
        description: str = "Test transaction",
        reference: str | None = None,
    ) -> TransactionInfo:
        return transaction_service.create_draft(
            tenant_id,
            transaction_type,
            transaction_date,
            description,
            test_actor_id,
            lines=tuple(lines),
            reference=reference,
        )

    return _create


@pytest.fixture
def post_transaction(
    create_draft, posting_service, tenant_id, test_actor_id
) -> Callable[..., tuple[TransactionInfo, PostedResult]]:
    """Create a draft from ``lines`` and post it; returns (draft, result)."""

    def _post(lines: Iterable[LineSpec], **kwargs) -> tuple[TransactionInfo, PostedResult]:
        draft = create_draft(lines, **kwargs)
        return draft, posting_service.post(tenant_id, draft.id, test_actor_id)

    return _post
