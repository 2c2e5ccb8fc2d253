"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect attribute history and raise
ImmutabilityViolationError before anything is written:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================
Entity            | When Immutable                        | Allowed changes
------------------|---------------------------------------|---------------------------
Transaction       | After status = POSTED                 | updated_at, updated_by_id
TransactionLine   | When parent transaction is POSTED     | none
LedgerEntry       | ALWAYS (from creation)                | none
AuditEvent        | ALWAYS (from creation)                | none
ReversalLink      | Link fields always; delete once the   | reason while draft
                  | reversing transaction is POSTED       |
Account           | code/account_type/parent_id once a    | name, is_active,
                  | ledger entry references the account   | security_level, ...

The DRAFT -> POSTED transition itself is allowed: the check asks whether the
transaction WAS posted before this flush, using the status attribute history.

Called once at startup (and by the test suite):

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})
ACCOUNT_STRUCTURAL_FIELDS = ("code", "account_type", "parent_id")
REVERSAL_LINK_FIELDS = ("original_transaction_id", "reversing_transaction_id", "kind")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _was_posted_before(target) -> bool:
    """True if the transaction was already POSTED when this flush began."""
    from ledger_kernel.models.transaction import TransactionStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        return status_history.deleted[0] == TransactionStatus.POSTED
    if not status_history.added:
        return target.status == TransactionStatus.POSTED
    return False


def _check_transaction_immutability(mapper, connection, target):
    """
    Prevent updates to posted Transaction headers.

    The posting flush (status DRAFT -> POSTED plus posted_at/posted_by_id)
    passes; any later change to a non-metadata field is blocked.
    """
    if not _was_posted_before(target):
        return

    for attr in inspect(target).attrs:
        if attr.key in AUDIT_METADATA_FIELDS or attr.key == "lines":
            continue
        if attr.history.has_changes():
            _blocked(
                "Transaction",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted transaction",
                field=attr.key,
            )


def _check_transaction_delete(mapper, connection, target):
    from ledger_kernel.models.transaction import TransactionStatus

    if target.status == TransactionStatus.POSTED:
        _blocked(
            "Transaction",
            target.id,
            "DELETE",
            "Posted transactions cannot be deleted",
        )


def _parent_is_posted(connection, target) -> bool:
    from ledger_kernel.models.transaction import TransactionStatus

    result = connection.execute(
        text("SELECT status FROM transactions WHERE id = :transaction_id"),
        {"transaction_id": str(target.transaction_id)},
    )
    return result.scalar() == TransactionStatus.POSTED.value


def _check_transaction_line_immutability(mapper, connection, target):
    if _parent_is_posted(connection, target):
        _blocked(
            "TransactionLine",
            target.id,
            "UPDATE",
            "Transaction lines cannot be modified after the transaction is posted",
        )


def _check_transaction_line_delete(mapper, connection, target):
    if _parent_is_posted(connection, target):
        _blocked(
            "TransactionLine",
            target.id,
            "DELETE",
            "Transaction lines cannot be deleted after the transaction is posted",
        )


def _check_ledger_entry_immutability(mapper, connection, target):
    _blocked("LedgerEntry", target.id, "UPDATE", "Ledger entries are immutable")


def _check_ledger_entry_delete(mapper, connection, target):
    _blocked("LedgerEntry", target.id, "DELETE", "Ledger entries cannot be deleted")


def _check_audit_event_immutability(mapper, connection, target):
    _blocked("AuditEvent", target.id, "UPDATE", "Audit events are immutable")


def _check_audit_event_delete(mapper, connection, target):
    _blocked("AuditEvent", target.id, "DELETE", "Audit events cannot be deleted")


def _check_reversal_link_immutability(mapper, connection, target):
    changed = [f for f in REVERSAL_LINK_FIELDS if get_history(target, f).has_changes()]
    if changed:
        _blocked(
            "ReversalLink",
            target.id,
            "UPDATE",
            f"Cannot modify reversal link field(s) {changed}",
            fields=changed,
        )


def _check_reversal_link_delete(mapper, connection, target):
    from ledger_kernel.models.transaction import TransactionStatus

    result = connection.execute(
        text("SELECT status FROM transactions WHERE id = :transaction_id"),
        {"transaction_id": str(target.reversing_transaction_id)},
    )
    if result.scalar() == TransactionStatus.POSTED.value:
        _blocked(
            "ReversalLink",
            target.id,
            "DELETE",
            "Reversal links of posted reversals cannot be deleted",
        )


def _account_has_ledger_entries(connection, account_id: str) -> bool:
    result = connection.execute(
        text("SELECT 1 FROM ledger_entries WHERE account_id = :account_id LIMIT 1"),
        {"account_id": account_id},
    )
    return result.first() is not None


def _check_account_structural_immutability(mapper, connection, target):
    """
    Prevent changes to structural fields on accounts referenced by ledger entries.

    Non-structural fields (name, is_active, security_level) can still be modified.
    """
    changed = [f for f in ACCOUNT_STRUCTURAL_FIELDS if get_history(target, f).has_changes()]
    if not changed:
        return

    if _account_has_ledger_entries(connection, str(target.id)):
        _blocked(
            "Account",
            target.id,
            "UPDATE",
            f"Cannot modify structural field(s) {changed} on account referenced by ledger entries",
            fields=changed,
        )


def _check_account_delete(mapper, connection, target):
    if _account_has_ledger_entries(connection, str(target.id)):
        _blocked(
            "Account",
            target.id,
            "DELETE",
            "Accounts referenced by ledger entries cannot be deleted",
        )


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.audit_event import AuditEvent
    from ledger_kernel.models.ledger_entry import LedgerEntry
    from ledger_kernel.models.reversal_link import ReversalLink
    from ledger_kernel.models.transaction import Transaction, TransactionLine

    return [
        (Transaction, "before_update", _check_transaction_immutability),
        (Transaction, "before_delete", _check_transaction_delete),
        (TransactionLine, "before_update", _check_transaction_line_immutability),
        (TransactionLine, "before_delete", _check_transaction_line_delete),
        (LedgerEntry, "before_update", _check_ledger_entry_immutability),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (ReversalLink, "before_update", _check_reversal_link_immutability),
        (ReversalLink, "before_delete", _check_reversal_link_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (Account, "before_delete", _check_account_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
