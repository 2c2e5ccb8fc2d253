"""
ReversalService -- full and partial reversals of posted transactions.

Responsibility:
    Builds DRAFT transactions that undo a posted transaction in full or in
    part, linked back to the original through a ReversalLink.  The draft is
    posted through the PostingService like any other transaction; this
    service never writes ledger entries.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes TransactionService and
    LedgerSelector.

Invariants enforced:
    - Only POSTED transactions can be reversed.
    - Full reversal: every line copied with direction swapped and amount
      unchanged, so original + reversal nets to zero on every account.
    - Partial reversal: per original line, net amount reversed so far plus
      the new amount never exceeds the original amount.  Checked here and
      again by the PostingService under a row lock.
    - Reversing a posted reversal (a void) lowers the net reversed amount of
      the original line by the voided amount.

Failure modes:
    - TransactionNotFoundError, TransactionNotPostedError,
      TransactionLineNotFoundError, AmountExceedsBalanceError,
      InvalidAmountError, ValidationError.

Reversal date:
    Defaults to the original transaction's date (``ORIGINAL_DATE``) or to
    the clock's current date (``CURRENT_DATE``), per the configured policy.
    Callers may always pass ``reversal_date`` explicitly, e.g. when the
    original period has been locked since.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import assert_never
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import validate_line_amount
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PartialReversalLine, ReversalInfo, TransactionInfo
from ledger_kernel.exceptions import (
    AmountExceedsBalanceError,
    TransactionLineNotFoundError,
    TransactionNotPostedError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.models.reversal_link import ReversalKind, ReversalLink
from ledger_kernel.models.transaction import (
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.transaction_service import TransactionService

logger = get_logger("services.reversal")


class ReversalDatePolicy(str, Enum):
    ORIGINAL_DATE = "original_date"
    CURRENT_DATE = "current_date"


def partial_reversal_type(original_type: TransactionType) -> TransactionType:
    """Bills are partially reversed by debit notes, invoices by credit notes."""
    match original_type:
        case TransactionType.SUPPLIER_BILL:
            return TransactionType.DEBIT_NOTE
        case TransactionType.SALES_INVOICE:
            return TransactionType.CREDIT_NOTE
        case (
            TransactionType.PAYMENT
            | TransactionType.RECEIPT
            | TransactionType.JOURNAL
            | TransactionType.TRANSFER
            | TransactionType.CREDIT_NOTE
            | TransactionType.DEBIT_NOTE
        ):
            return TransactionType.JOURNAL
        case _:
            assert_never(original_type)


class ReversalService:
    """
    Creates reversal drafts for posted transactions.

    Contract:
        ``reverse()`` and ``reverse_partial()`` return the new DRAFT as a
        ``TransactionInfo``; posting it is a separate PostingService call in
        the same or a later unit of work.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT post the draft it creates.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
        date_policy: ReversalDatePolicy = ReversalDatePolicy.ORIGINAL_DATE,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._transactions = TransactionService(session, self._clock, self._auditor)
        self._selector = LedgerSelector(session)
        self._date_policy = ReversalDatePolicy(date_policy)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def remaining_balance(self, tenant_id: UUID, transaction_id: UUID) -> dict[UUID, Decimal]:
        """Amount still reversible on each line of a transaction."""
        original = self._transactions.load(tenant_id, transaction_id)
        already = self._selector.net_reversed_amounts(tenant_id, {l.id for l in original.lines})
        return {line.id: line.amount - already[line.id] for line in original.lines}

    def reversals_of(self, tenant_id: UUID, transaction_id: UUID) -> list[ReversalInfo]:
        links = self._session.execute(
            select(ReversalLink)
            .where(
                ReversalLink.tenant_id == tenant_id,
                ReversalLink.original_transaction_id == transaction_id,
            )
            .order_by(ReversalLink.created_at)
        ).scalars()
        return [ReversalInfo.from_model(link) for link in links]

    # ------------------------------------------------------------------
    # Reversal creation
    # ------------------------------------------------------------------

    def reverse(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        reversal_date: date | None = None,
    ) -> TransactionInfo:
        """
        Build a full reversal draft of a posted transaction.

        Every line is copied with its direction swapped and its amount
        unchanged.  Fails if any line has already been partially reversed,
        since the full amount no longer remains.

        Raises:
            TransactionNotPostedError: The original is still a draft.
            AmountExceedsBalanceError: Part of the original is already reversed.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, transaction_id=transaction_id):
            original = self._load_posted(tenant_id, transaction_id)
            lines = sorted(original.lines, key=lambda l: l.line_seq)
            self._check_remaining(tenant_id, [(l, l.amount) for l in lines])

            return self._create(
                original,
                kind=ReversalKind.FULL,
                transaction_type=original.transaction_type,
                selections=[(l, l.amount) for l in lines],
                actor_id=actor_id,
                reason=reason,
                reversal_date=reversal_date,
            )

    def reverse_partial(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        actor_id: UUID,
        lines: Sequence[PartialReversalLine],
        reason: str | None = None,
        reversal_date: date | None = None,
    ) -> TransactionInfo:
        """
        Build a partial reversal draft (credit note, debit note or journal).

        Each selected original line is reversed for the requested amount.
        The draft does not have to balance by construction; the posting gate
        rejects it if it does not.

        Raises:
            ValidationError: No lines, or the same line selected twice.
            TransactionLineNotFoundError: A line is not part of the original.
            AmountExceedsBalanceError: More than remains on a line.
        """
        if not lines:
            raise ValidationError("A partial reversal needs at least one line")
        line_ids = [sel.line_id for sel in lines]
        if len(set(line_ids)) != len(line_ids):
            raise ValidationError("Each original line may be selected only once")

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, transaction_id=transaction_id):
            original = self._load_posted(tenant_id, transaction_id)
            by_id = {l.id: l for l in original.lines}

            selections: list[tuple[TransactionLine, Decimal]] = []
            for sel in lines:
                line = by_id.get(sel.line_id)
                if line is None:
                    raise TransactionLineNotFoundError(str(transaction_id), str(sel.line_id))
                selections.append((line, validate_line_amount(sel.amount)))
            selections.sort(key=lambda s: s[0].line_seq)

            self._check_remaining(tenant_id, selections)

            return self._create(
                original,
                kind=ReversalKind.PARTIAL,
                transaction_type=partial_reversal_type(original.transaction_type),
                selections=selections,
                actor_id=actor_id,
                reason=reason,
                reversal_date=reversal_date,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_posted(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        original = self._transactions.load(tenant_id, transaction_id, for_update=True)
        if original.status != TransactionStatus.POSTED:
            raise TransactionNotPostedError(str(transaction_id), original.status.value)
        return original

    def _check_remaining(
        self, tenant_id: UUID, selections: list[tuple[TransactionLine, Decimal]]
    ) -> None:
        already = self._selector.net_reversed_amounts(tenant_id, {l.id for l, _ in selections})
        for line, amount in selections:
            remaining = line.amount - already[line.id]
            if amount > remaining:
                logger.warning(
                    "reversal_exceeds_balance",
                    extra={
                        "line_id": str(line.id),
                        "requested": str(amount),
                        "remaining": str(remaining),
                    },
                )
                raise AmountExceedsBalanceError(str(line.id), amount, remaining)

    def _resolve_date(self, original: Transaction, reversal_date: date | None) -> date:
        if reversal_date is not None:
            return reversal_date
        match self._date_policy:
            case ReversalDatePolicy.ORIGINAL_DATE:
                return original.transaction_date
            case ReversalDatePolicy.CURRENT_DATE:
                return self._clock.today()
            case _:
                assert_never(self._date_policy)

    def _create(
        self,
        original: Transaction,
        kind: ReversalKind,
        transaction_type: TransactionType,
        selections: list[tuple[TransactionLine, Decimal]],
        actor_id: UUID,
        reason: str | None,
        reversal_date: date | None,
    ) -> TransactionInfo:
        effective_date = self._resolve_date(original, reversal_date)
        description = f"Reversal of {original.description}".strip()
        if reason:
            description = f"{description}: {reason}"

        draft = self._transactions.new_draft(
            original.tenant_id,
            transaction_type,
            effective_date,
            description[:500],
            actor_id,
            reference=original.reference,
        )
        for line, amount in selections:
            self._transactions.append_line(
                draft,
                account_id=line.account_id,
                direction=line.direction.opposite(),
                amount=amount,
                actor_id=actor_id,
                tax_code=line.tax_code,
                department=line.department,
                memo=f"Reversal of line {line.line_seq}",
                reverses_line_id=line.id,
                is_tax_line=line.is_tax_line,
            )
        self._session.flush()

        link = ReversalLink(
            tenant_id=original.tenant_id,
            original_transaction_id=original.id,
            reversing_transaction_id=draft.id,
            kind=kind,
            reason=reason,
            created_by_id=actor_id,
        )
        self._session.add(link)
        self._session.flush()

        self._auditor.log_event(
            original.tenant_id,
            actor_id,
            AuditEventType.REVERSAL_CREATED,
            "Transaction",
            original.id,
            f"{kind.value.capitalize()} reversal drafted as {transaction_type.value}",
            {
                "reversing_transaction_id": draft.id,
                "kind": kind.value,
                "reason": reason,
                "reversal_date": effective_date,
                "amounts": {str(line.id): amount for line, amount in selections},
            },
        )
        logger.info(
            "reversal_created",
            extra={
                "original_transaction_id": str(original.id),
                "reversing_transaction_id": str(draft.id),
                "kind": kind.value,
                "reversal_date": str(effective_date),
                "line_count": len(selections),
            },
        )
        return TransactionInfo.from_model(draft)
