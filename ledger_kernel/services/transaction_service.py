"""
TransactionService -- the draft side of the Transaction aggregate.

Responsibility:
    Creates draft transactions, adds/edits/removes their lines, deletes
    drafts, and exposes read access to transactions.  Posting is the
    PostingService's job; reversal drafts are built by the ReversalService
    through ``append_line``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Only DRAFT transactions can be edited or deleted
      (TransactionNotDraftError; ORM listeners back this up).
    - line_seq is assigned in insertion order and never reused within a
      transaction.
    - Line amounts are positive with at most two decimal places.

Failure modes:
    - TransactionNotFoundError, TransactionLineNotFoundError,
      TransactionNotDraftError, AccountNotFoundError, InvalidAmountError.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import validate_line_amount
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, TransactionInfo, TransactionLineInfo
from ledger_kernel.exceptions import (
    ReversalLineMismatchError,
    TransactionLineNotFoundError,
    TransactionNotDraftError,
    TransactionNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.models.reversal_link import ReversalLink
from ledger_kernel.models.transaction import (
    Direction,
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.base import BaseService

logger = get_logger("services.transaction")

_UNSET = object()


class TransactionService(BaseService[Transaction]):
    """
    Service for draft transactions.

    Contract:
        Every method is scoped by ``tenant_id``; a transaction of another
        tenant behaves exactly like a missing one.  Reads return frozen
        ``TransactionInfo`` DTOs.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._accounts = AccountService(session, self._auditor)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, tenant_id: UUID, transaction_id: UUID, for_update: bool = False) -> Transaction:
        """
        Load the ORM transaction, optionally under ``SELECT ... FOR UPDATE``.

        ``populate_existing`` makes a locked read overwrite whatever the
        identity map already holds, so status checks see committed state.

        Raises:
            TransactionNotFoundError: Missing or owned by another tenant.
        """
        stmt = select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        transaction = self.session.execute(stmt).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(str(transaction_id))
        return transaction

    def load_draft(self, tenant_id: UUID, transaction_id: UUID) -> Transaction:
        transaction = self.load(tenant_id, transaction_id, for_update=True)
        if transaction.status != TransactionStatus.DRAFT:
            raise TransactionNotDraftError(str(transaction_id), transaction.status.value)
        return transaction

    def get(self, tenant_id: UUID, transaction_id: UUID) -> TransactionInfo:
        return TransactionInfo.from_model(self.load(tenant_id, transaction_id))

    def list_transactions(
        self,
        tenant_id: UUID,
        status: TransactionStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[TransactionInfo]:
        stmt = (
            select(Transaction)
            .where(Transaction.tenant_id == tenant_id)
            .order_by(Transaction.transaction_date, Transaction.created_at)
        )
        if status is not None:
            stmt = stmt.where(Transaction.status == status)
        if start_date is not None:
            stmt = stmt.where(Transaction.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Transaction.transaction_date <= end_date)
        return [TransactionInfo.from_model(t) for t in self.session.execute(stmt).scalars()]

    def calculate_balance(self, tenant_id: UUID, transaction_id: UUID) -> Decimal:
        """Debits minus credits of the transaction's lines; zero when balanced."""
        transaction = self.load(tenant_id, transaction_id)
        return transaction.total_debits - transaction.total_credits

    # ------------------------------------------------------------------
    # Draft lifecycle
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
        """
        Create a DRAFT transaction, optionally with its initial lines.

        Raises:
            AccountNotFoundError: A line references an unknown account code.
            InvalidAmountError: A line amount is not positive or too precise.
        """
        transaction = self.new_draft(
            tenant_id, transaction_type, transaction_date, description, actor_id, reference
        )
        for spec in lines:
            self._append_spec(transaction, spec, actor_id)
        self.session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.TRANSACTION_CREATED,
            "Transaction",
            transaction.id,
            f"Draft {transaction.transaction_type.value} created",
            {
                "transaction_date": transaction_date,
                "line_count": len(transaction.lines),
                "reference": reference,
            },
        )
        logger.info(
            "draft_created",
            extra={
                "transaction_id": str(transaction.id),
                "transaction_type": transaction.transaction_type.value,
                "line_count": len(transaction.lines),
            },
        )
        return TransactionInfo.from_model(transaction)

    def new_draft(
        self,
        tenant_id: UUID,
        transaction_type: TransactionType,
        transaction_date: date,
        description: str,
        actor_id: UUID,
        reference: str | None = None,
    ) -> Transaction:
        """Add an empty DRAFT header to the session and flush it."""
        transaction = Transaction(
            tenant_id=tenant_id,
            transaction_type=TransactionType(transaction_type),
            transaction_date=transaction_date,
            description=description,
            reference=reference,
            status=TransactionStatus.DRAFT,
            created_by_id=actor_id,
            lines=[],
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def append_line(
        self,
        transaction: Transaction,
        account_id: UUID,
        direction: Direction,
        amount: Decimal,
        actor_id: UUID,
        tax_code: str | None = None,
        department: str | None = None,
        memo: str | None = None,
        reverses_line_id: UUID | None = None,
        is_tax_line: bool = False,
    ) -> TransactionLine:
        """Append a line to a loaded draft, assigning the next line_seq."""
        next_seq = max((l.line_seq for l in transaction.lines), default=0) + 1
        line = TransactionLine(
            tenant_id=transaction.tenant_id,
            line_seq=next_seq,
            account_id=account_id,
            direction=Direction(direction),
            amount=validate_line_amount(amount),
            tax_code=tax_code,
            department=department,
            memo=memo,
            reverses_line_id=reverses_line_id,
            is_tax_line=is_tax_line,
            created_by_id=actor_id,
        )
        transaction.lines.append(line)
        return line

    def _append_spec(self, transaction: Transaction, spec: LineSpec, actor_id: UUID) -> TransactionLine:
        account = self._accounts.find_by_code(transaction.tenant_id, spec.account_code)
        return self.append_line(
            transaction,
            account_id=account.id,
            direction=spec.direction,
            amount=spec.amount,
            actor_id=actor_id,
            tax_code=spec.tax_code if spec.tax_code is not None else account.tax_default_code,
            department=spec.department,
            memo=spec.memo,
        )

    def add_line(
        self, tenant_id: UUID, transaction_id: UUID, spec: LineSpec, actor_id: UUID
    ) -> TransactionLineInfo:
        """
        Raises:
            TransactionNotDraftError: The transaction is already posted.
        """
        transaction = self.load_draft(tenant_id, transaction_id)
        line = self._append_spec(transaction, spec, actor_id)
        transaction.updated_by_id = actor_id
        self.session.flush()
        logger.debug(
            "draft_line_added",
            extra={"transaction_id": str(transaction_id), "line_seq": line.line_seq},
        )
        return TransactionLineInfo.from_model(line)

    def add_lines(
        self, tenant_id: UUID, transaction_id: UUID, specs: Sequence[LineSpec], actor_id: UUID
    ) -> list[TransactionLineInfo]:
        return [self.add_line(tenant_id, transaction_id, spec, actor_id) for spec in specs]

    def _find_line(self, transaction: Transaction, line_id: UUID) -> TransactionLine:
        for line in transaction.lines:
            if line.id == line_id:
                return line
        raise TransactionLineNotFoundError(str(transaction.id), str(line_id))

    def update_line(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        line_id: UUID,
        actor_id: UUID,
        *,
        account_code: str | None = None,
        direction: Direction | None = None,
        amount: Decimal | str | None = None,
        tax_code: str | None | object = _UNSET,
        department: str | None | object = _UNSET,
        memo: str | None | object = _UNSET,
    ) -> TransactionLineInfo:
        """
        Edit a draft line in place; omitted fields are left unchanged.

        A line that reverses another keeps its account and direction; only
        its amount and descriptive fields may change.

        Raises:
            ReversalLineMismatchError: account or direction edit on a
                reversing line.
        """
        transaction = self.load_draft(tenant_id, transaction_id)
        line = self._find_line(transaction, line_id)

        if line.reverses_line_id is not None:
            for field, value in (("account", account_code), ("direction", direction)):
                if value is not None:
                    raise ReversalLineMismatchError(str(line.id), str(line.reverses_line_id), field)

        if account_code is not None:
            line.account_id = self._accounts.find_by_code(tenant_id, account_code).id
        if direction is not None:
            line.direction = Direction(direction)
        if amount is not None:
            line.amount = validate_line_amount(amount)
        if tax_code is not _UNSET:
            line.tax_code = tax_code
        if department is not _UNSET:
            line.department = department
        if memo is not _UNSET:
            line.memo = memo
        line.updated_by_id = actor_id
        self.session.flush()
        return TransactionLineInfo.from_model(line)

    def remove_line(self, tenant_id: UUID, transaction_id: UUID, line_id: UUID, actor_id: UUID) -> None:
        transaction = self.load_draft(tenant_id, transaction_id)
        line = self._find_line(transaction, line_id)
        transaction.lines.remove(line)
        transaction.updated_by_id = actor_id
        self.session.flush()
        logger.debug(
            "draft_line_removed",
            extra={"transaction_id": str(transaction_id), "line_seq": line.line_seq},
        )

    def delete_draft(self, tenant_id: UUID, transaction_id: UUID, actor_id: UUID) -> None:
        """
        Delete a DRAFT transaction with its lines (and reversal link, if it
        is an unposted reversal).

        Raises:
            TransactionNotDraftError: Posted transactions are never deleted.
        """
        transaction = self.load_draft(tenant_id, transaction_id)
        transaction_type = transaction.transaction_type.value

        link = self.session.execute(
            select(ReversalLink).where(
                ReversalLink.tenant_id == tenant_id,
                ReversalLink.reversing_transaction_id == transaction_id,
            )
        ).scalar_one_or_none()
        if link is not None:
            self.session.delete(link)
            self.session.flush()
        self.session.delete(transaction)
        self.session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.TRANSACTION_DELETED,
            "Transaction",
            transaction_id,
            f"Draft {transaction_type} deleted",
        )
        logger.info("draft_deleted", extra={"transaction_id": str(transaction_id)})
