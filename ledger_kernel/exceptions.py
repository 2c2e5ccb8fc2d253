"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyTransactionError
    |   +-- InvalidAmountError
    |   +-- AccountHierarchyError
    |
    +-- DomainInvariantViolation
    |   +-- UnbalancedTransactionError
    |   +-- LockedPeriodError
    |   +-- InactiveAccountError
    |   +-- AmountExceedsBalanceError
    |   +-- ReversalLineMismatchError
    |
    +-- AlreadyPostedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentPostingError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- PeriodNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- TransactionLineNotFoundError
    |   +-- TaxCodeNotFoundError
    |
    +-- StateError
    |   +-- TransactionNotDraftError
    |   +-- TransactionNotPostedError
    |   +-- PeriodStatusError
    |
    +-- ConflictError
    |   +-- DuplicateAccountCodeError
    |   +-- DuplicateTaxCodeError
    |   +-- PeriodOverlapError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | EMPTY_TRANSACTION           | Posting a transaction with no lines
                | INVALID_AMOUNT              | Amount <= 0 or more than 2 decimals
                | ACCOUNT_HIERARCHY           | Parent cycle or cross-tenant parent
----------------|-----------------------------|-----------------------------------------
Invariant       | UNBALANCED_TRANSACTION      | Debits != Credits
                | LOCKED_PERIOD               | Posting into a LOCKED period
                | INACTIVE_ACCOUNT            | Line references a deactivated account
                | AMOUNT_EXCEEDS_BALANCE      | Reversal larger than what remains
                | REVERSAL_LINE_MISMATCH      | Reversing line changed account or side
----------------|-----------------------------|-----------------------------------------
Posting         | ALREADY_POSTED              | Transaction is not DRAFT any more
Concurrency     | CONCURRENT_POSTING          | Version conflict while posting
----------------|-----------------------------|-----------------------------------------
Not found       | ACCOUNT_NOT_FOUND           | Unknown account id/code for tenant
                | PERIOD_NOT_FOUND            | No period covers the date
                | TRANSACTION_NOT_FOUND       | Unknown transaction for tenant
                | TRANSACTION_LINE_NOT_FOUND  | Line does not belong to transaction
                | TAX_CODE_NOT_FOUND          | Unknown tax code for tenant
----------------|-----------------------------|-----------------------------------------
State           | TRANSACTION_NOT_DRAFT       | Editing a posted transaction
                | TRANSACTION_NOT_POSTED      | Reversing a draft
                | PERIOD_STATUS               | Locking a locked period, etc.
----------------|-----------------------------|-----------------------------------------
Conflict        | DUPLICATE_ACCOUNT_CODE      | Account code already used by tenant
                | DUPLICATE_TAX_CODE          | Tax code already used by tenant
                | PERIOD_OVERLAP              | Fiscal year overlaps another
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a posted/append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

Catch by type and read structured attributes, never parse messages:

    try:
        orchestrator.post(tenant_id, transaction_id, actor_id)
    except LockedPeriodError as e:
        notify(f"Period {e.period_code} is locked")
    except UnbalancedTransactionError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}

Re-posting is never a silent no-op: a second post of the same transaction
raises AlreadyPostedError and leaves the ledger untouched.
"""

from datetime import date
from decimal import Decimal


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Input is malformed independently of ledger state."""

    code: str = "VALIDATION_ERROR"


class EmptyTransactionError(ValidationError):
    """Transaction has no lines."""

    code: str = "EMPTY_TRANSACTION"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} has no lines")


class InvalidAmountError(ValidationError):
    """Line amount is not positive or has more than two decimal places."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class AccountHierarchyError(ValidationError):
    """Account parent assignment would break the account tree."""

    code: str = "ACCOUNT_HIERARCHY"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Invalid parent for account {account_code}: {reason}")


# Domain invariants


class DomainInvariantViolation(LedgerKernelError):
    """A ledger rule would be broken by the requested change."""

    code: str = "DOMAIN_INVARIANT_VIOLATION"


class UnbalancedTransactionError(DomainInvariantViolation):
    """Debits and credits do not match at two decimal places."""

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(f"debits={debits}, credits={credits}")


class LockedPeriodError(DomainInvariantViolation):
    """Attempted to post into a LOCKED period."""

    code: str = "LOCKED_PERIOD"

    def __init__(self, period_code: str, effective_date: date | str):
        self.period_code = period_code
        self.effective_date = str(effective_date)
        super().__init__(
            f"Cannot post to locked period {period_code} for date {effective_date}"
        )


class InactiveAccountError(DomainInvariantViolation):
    """A line references a deactivated account."""

    code: str = "INACTIVE_ACCOUNT"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class AmountExceedsBalanceError(DomainInvariantViolation):
    """A reversal would take back more than remains on the original line."""

    code: str = "AMOUNT_EXCEEDS_BALANCE"

    def __init__(self, line_id: str, requested: Decimal, remaining: Decimal):
        self.line_id = line_id
        self.requested = str(requested)
        self.remaining = str(remaining)
        super().__init__(
            f"Reversal of {requested} exceeds remaining {remaining} on line {line_id}"
        )


class ReversalLineMismatchError(DomainInvariantViolation):
    """A reversing line does not mirror the account and side of the line it reverses."""

    code: str = "REVERSAL_LINE_MISMATCH"

    def __init__(self, line_id: str, reverses_line_id: str, field: str):
        self.line_id = line_id
        self.reverses_line_id = reverses_line_id
        self.field = field
        super().__init__(
            f"Line {line_id} reverses {reverses_line_id} but its {field} does not mirror it"
        )


# Posting and concurrency


class AlreadyPostedError(LedgerKernelError):
    """Transaction has already been posted."""

    code: str = "ALREADY_POSTED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} is already posted")


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrent modification conflicts."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentPostingError(ConcurrencyError):
    """Another unit of work changed the transaction while it was being posted."""

    code: str = "CONCURRENT_POSTING"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} was modified concurrently while posting"
        )


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account with given id or code was not found for the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class PeriodNotFoundError(NotFoundError):
    """No period covers the given date."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, effective_date: date | str):
        self.effective_date = str(effective_date)
        super().__init__(f"No period defined for date {effective_date}")


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class TransactionLineNotFoundError(NotFoundError):
    code: str = "TRANSACTION_LINE_NOT_FOUND"

    def __init__(self, transaction_id: str, line_id: str):
        self.transaction_id = transaction_id
        self.line_id = line_id
        super().__init__(
            f"Line {line_id} does not belong to transaction {transaction_id}"
        )


class TaxCodeNotFoundError(NotFoundError):
    code: str = "TAX_CODE_NOT_FOUND"

    def __init__(self, tax_code: str):
        self.tax_code = tax_code
        super().__init__(f"Tax code not found: {tax_code}")


# State


class StateError(LedgerKernelError):
    """Entity is in the wrong lifecycle state for the operation."""

    code: str = "STATE_ERROR"


class TransactionNotDraftError(StateError):
    """Only DRAFT transactions can be edited or deleted."""

    code: str = "TRANSACTION_NOT_DRAFT"

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id} is {status}; only drafts can be changed"
        )


class TransactionNotPostedError(StateError):
    """Only POSTED transactions can be reversed."""

    code: str = "TRANSACTION_NOT_POSTED"

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id} is {status}; only posted transactions can be reversed"
        )


class PeriodStatusError(StateError):
    code: str = "PERIOD_STATUS"

    def __init__(self, period_code: str, status: str, requested: str):
        self.period_code = period_code
        self.status = status
        self.requested = requested
        super().__init__(f"Cannot {requested} period {period_code}: it is {status}")


# Conflicts


class ConflictError(LedgerKernelError):
    """Base exception for uniqueness and overlap conflicts."""

    code: str = "CONFLICT"


class DuplicateAccountCodeError(ConflictError):
    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class DuplicateTaxCodeError(ConflictError):
    code: str = "DUPLICATE_TAX_CODE"

    def __init__(self, tax_code: str):
        self.tax_code = tax_code
        super().__init__(f"Tax code already exists: {tax_code}")


class PeriodOverlapError(ConflictError):
    """New fiscal year overlaps an existing one."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, label: str, existing_label: str):
        self.label = label
        self.existing_label = existing_label
        super().__init__(
            f"Fiscal year {label} overlaps existing fiscal year {existing_label}"
        )


# Immutability


class ImmutabilityViolationError(LedgerKernelError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries and audit events are immutable once written; transactions
    and their lines are immutable once posted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
