"""
PostingService -- the single gate between draft transactions and the ledger.

Responsibility:
    Validates a DRAFT transaction against every posting precondition,
    generates exactly one LedgerEntry per line, marks the transaction
    POSTED and records the audit event, all inside the caller's unit of work.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes TransactionService,
    AccountService, PeriodService, LedgerSelector and the audit sink.
    The ReversalService never writes ledger entries itself; reversal drafts
    come through here like any other transaction.

Invariants enforced:
    - Balance: sum of debit entries == sum of credit entries at 2 dp.
    - Exactly-once: DRAFT -> POSTED happens once; ledger entries are unique
      per transaction line.  A second post raises AlreadyPostedError.
    - Period control: no entry is created in a LOCKED or undefined period.
    - Reversal bound: a reversing line never takes back more than remains
      on the original line.
    - All-or-nothing: every check runs before the first write.

Failure modes:
    - TransactionNotFoundError, AlreadyPostedError, EmptyTransactionError,
      InvalidAmountError, AccountNotFoundError, InactiveAccountError,
      PeriodNotFoundError, LockedPeriodError, UnbalancedTransactionError,
      AmountExceedsBalanceError, ConcurrentPostingError.

Concurrency:
    The transaction row is read ``SELECT ... FOR UPDATE`` (populate_existing)
    so concurrent posts of the same transaction serialize; the loser sees
    POSTED and raises AlreadyPostedError.  Where row locks are unavailable
    (SQLite) the version counter turns the losing UPDATE into StaleDataError,
    surfaced as ConcurrentPostingError.  Original transactions referenced by
    reversing lines are locked too, so two reversals of the same line cannot
    both pass the bound check.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.domain.amounts import MINOR_UNIT, validate_line_amount
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PostedResult
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AlreadyPostedError,
    AmountExceedsBalanceError,
    ConcurrentPostingError,
    EmptyTransactionError,
    InactiveAccountError,
    LockedPeriodError,
    ReversalLineMismatchError,
    TransactionLineNotFoundError,
    UnbalancedTransactionError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.models.fiscal_period import FiscalPeriod
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.transaction import (
    Direction,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.transaction_service import TransactionService

logger = get_logger("services.posting")


class PostingService:
    """
    Posts DRAFT transactions to the general ledger.

    Contract:
        ``post()`` either returns a PostedResult with every ledger entry
        flushed, or raises a typed error having written nothing.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller owns the unit of work.
        - Does NOT decide who may post (authorization is upstream).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._transactions = TransactionService(session, self._clock, self._auditor)
        self._accounts = AccountService(session, self._auditor)
        self._periods = PeriodService(session, self._clock, self._auditor)
        self._selector = LedgerSelector(session)

    def post(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> PostedResult:
        """
        Post a DRAFT transaction.

        Postconditions:
            - One LedgerEntry per line, in line_seq order, dated on the
              transaction date, with exactly one non-zero side.
            - status is POSTED, posted_at is the clock's now, posted_by_id
              is ``actor_id``.
            - A TRANSACTION_POSTED audit event is in the same unit of work.
        """
        with LogContext.bind(
            tenant_id=tenant_id, actor_id=actor_id, transaction_id=transaction_id
        ):
            logger.info("posting_started")
            try:
                result = self._post(tenant_id, transaction_id, actor_id)
            except StaleDataError as exc:
                logger.warning("posting_concurrent_conflict")
                raise ConcurrentPostingError(str(transaction_id)) from exc
            except Exception as exc:
                logger.warning(
                    "posting_rejected",
                    extra={
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                        "error": str(exc),
                    },
                )
                raise
            logger.info(
                "posting_completed",
                extra={
                    "period_code": result.period_code,
                    "entry_count": result.entry_count,
                    "total_debits": str(result.total_debits),
                },
            )
            return result

    def _post(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> PostedResult:
        # Step 1: lock the header and check its lifecycle state
        transaction = self._transactions.load(tenant_id, transaction_id, for_update=True)
        if transaction.status != TransactionStatus.DRAFT:
            raise AlreadyPostedError(str(transaction_id))

        lines = sorted(transaction.lines, key=lambda l: l.line_seq)
        if not lines:
            raise EmptyTransactionError(str(transaction_id))

        # Step 2: line amounts
        for line in lines:
            validate_line_amount(line.amount)

        # Step 3: accounts exist for the tenant and are active
        accounts = self._accounts.get_many(tenant_id, {l.account_id for l in lines})
        for line in lines:
            account = accounts.get(line.account_id)
            if account is None:
                raise AccountNotFoundError(str(line.account_id))
            if not account.is_active:
                raise InactiveAccountError(account.code)

        # Step 4: covering period exists and is open
        period = self._periods.period_model_for(
            tenant_id, transaction.transaction_date, lock=True
        )
        if not period.is_open:
            raise LockedPeriodError(period.period_code, transaction.transaction_date)

        # Step 5: balance at two decimal places
        total_debits = sum(
            (l.amount for l in lines if l.direction == Direction.DEBIT), Decimal("0")
        ).quantize(MINOR_UNIT)
        total_credits = sum(
            (l.amount for l in lines if l.direction == Direction.CREDIT), Decimal("0")
        ).quantize(MINOR_UNIT)
        if total_debits != total_credits:
            raise UnbalancedTransactionError(total_debits, total_credits)

        # Step 6: reversal bound for lines that reverse earlier lines
        self._check_reversal_bounds(tenant_id, transaction, lines)

        # Step 7: flip status, write entries, record the audit event
        return self._write(transaction, lines, period, actor_id, total_debits, total_credits)

    def _check_reversal_bounds(
        self, tenant_id: UUID, transaction: Transaction, lines: list[TransactionLine]
    ) -> None:
        reversing = [l for l in lines if l.reverses_line_id is not None]
        if not reversing:
            return

        requested: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for line in reversing:
            requested[line.reverses_line_id] += line.amount

        originals = {
            l.id: l
            for l in self._session.execute(
                select(TransactionLine).where(
                    TransactionLine.tenant_id == tenant_id,
                    TransactionLine.id.in_(requested.keys()),
                )
            ).scalars()
        }
        missing = set(requested) - set(originals)
        if missing:
            raise TransactionLineNotFoundError(str(transaction.id), str(sorted(missing, key=str)[0]))

        for line in reversing:
            original = originals[line.reverses_line_id]
            if line.account_id != original.account_id:
                raise ReversalLineMismatchError(str(line.id), str(original.id), "account")
            if Direction(line.direction) is not Direction(original.direction).opposite():
                raise ReversalLineMismatchError(str(line.id), str(original.id), "direction")

        # Serialize concurrent reversals of the same originals
        self._session.execute(
            select(Transaction.id)
            .where(Transaction.id.in_({l.transaction_id for l in originals.values()}))
            .with_for_update()
        ).all()

        already = self._selector.net_reversed_amounts(tenant_id, set(requested))
        for line_id, amount in requested.items():
            remaining = originals[line_id].amount - already[line_id]
            if amount > remaining:
                raise AmountExceedsBalanceError(str(line_id), amount, remaining)

    def _write(
        self,
        transaction: Transaction,
        lines: list[TransactionLine],
        period: FiscalPeriod,
        actor_id: UUID,
        total_debits: Decimal,
        total_credits: Decimal,
    ) -> PostedResult:
        # Header first: a stale version fails here, before any entry is inserted
        posted_at = self._clock.now()
        transaction.status = TransactionStatus.POSTED
        transaction.posted_at = posted_at
        transaction.posted_by_id = actor_id
        transaction.updated_by_id = actor_id
        self._session.flush()

        entries = []
        for line in lines:
            is_debit = line.direction == Direction.DEBIT
            entry = LedgerEntry(
                tenant_id=transaction.tenant_id,
                transaction_id=transaction.id,
                transaction_line_id=line.id,
                line_seq=line.line_seq,
                entry_date=transaction.transaction_date,
                account_id=line.account_id,
                amount_dr=line.amount if is_debit else Decimal("0.00"),
                amount_cr=Decimal("0.00") if is_debit else line.amount,
                tax_code=line.tax_code,
                is_tax_line=line.is_tax_line,
                department=line.department,
                created_by_id=actor_id,
            )
            self._session.add(entry)
            entries.append(entry)

        self._auditor.log_event(
            transaction.tenant_id,
            actor_id,
            AuditEventType.TRANSACTION_POSTED,
            "Transaction",
            transaction.id,
            f"{transaction.transaction_type.value} posted to {period.period_code}",
            {
                "transaction_date": transaction.transaction_date,
                "period_code": period.period_code,
                "line_count": len(lines),
                "total_debits": total_debits,
                "total_credits": total_credits,
            },
        )
        self._session.flush()

        return PostedResult(
            transaction_id=transaction.id,
            posted_at=posted_at,
            period_code=period.period_code,
            ledger_entry_ids=tuple(e.id for e in entries),
            total_debits=total_debits,
            total_credits=total_credits,
        )
