"""
AccountService -- per-tenant chart of accounts.

Responsibility:
    Resolves accounts for the posting engine and reports, and manages the
    account lifecycle (create, rename, activate/deactivate, security level,
    parent assignment).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Account code is unique per tenant and at most 7 characters.
    - The parent graph is a tree: no cycles, parents in the same tenant.
    - Account writes never touch ledger state.  Structural fields (code,
      type, parent) are frozen once referenced (db/immutability.py).

Failure modes:
    - AccountNotFoundError, DuplicateAccountCodeError, ValidationError,
      AccountHierarchyError.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import (
    AccountHierarchyError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import ACCOUNT_CODE_MAX_LENGTH, Account, AccountType
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """
    Service for the chart of accounts.

    Contract:
        Lookups take ``tenant_id`` and return frozen ``AccountInfo`` DTOs.
        An account of another tenant is indistinguishable from a missing one.

    Non-goals:
        - Does NOT decide who may see an account; callers pass the resolved
          maximum security level to list_accounts and to reports.
    """

    def __init__(self, session: Session, auditor: AuditSink | None = None):
        super().__init__(session)
        self._auditor = auditor or AuditorService(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _find_model(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()

    def _get_model(self, tenant_id: UUID, code: str) -> Account:
        account = self._find_model(tenant_id, code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def find_by_code(self, tenant_id: UUID, code: str) -> AccountInfo:
        """
        Raises:
            AccountNotFoundError: If no account with ``code`` exists for the tenant.
        """
        return AccountInfo.from_model(self._get_model(tenant_id, code))

    def get(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        account = self.session.get(Account, account_id)
        if account is None or account.tenant_id != tenant_id:
            raise AccountNotFoundError(str(account_id))
        return AccountInfo.from_model(account)

    def get_many(self, tenant_id: UUID, account_ids: Iterable[UUID]) -> dict[UUID, AccountInfo]:
        """Accounts keyed by id; ids missing for the tenant are simply absent."""
        ids = set(account_ids)
        if not ids:
            return {}
        accounts = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id.in_(ids))
        ).scalars()
        return {a.id: AccountInfo.from_model(a) for a in accounts}

    @staticmethod
    def is_active(account: AccountInfo) -> bool:
        return account.is_active

    @staticmethod
    def effective_security_level(account: AccountInfo) -> int:
        return account.effective_security_level

    def list_accounts(
        self,
        tenant_id: UUID,
        max_security_level: int | None = None,
        active_only: bool = False,
    ) -> list[AccountInfo]:
        """All accounts of a tenant ordered by code, optionally filtered."""
        stmt = select(Account).where(Account.tenant_id == tenant_id).order_by(Account.code)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        accounts = [AccountInfo.from_model(a) for a in self.session.execute(stmt).scalars()]
        if max_security_level is not None:
            accounts = [a for a in accounts if a.effective_security_level <= max_security_level]
        return accounts

    def children(self, tenant_id: UUID, code: str) -> list[AccountInfo]:
        parent = self._get_model(tenant_id, code)
        stmt = (
            select(Account)
            .where(Account.tenant_id == tenant_id, Account.parent_id == parent.id)
            .order_by(Account.code)
        )
        return [AccountInfo.from_model(a) for a in self.session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_code: str | None = None,
        security_level: int | None = None,
        tax_default_code: str | None = None,
    ) -> AccountInfo:
        """
        Create an account.

        Raises:
            ValidationError: Empty code, code longer than 7 characters, or
                negative security level.
            DuplicateAccountCodeError: Code already used by the tenant.
            AccountNotFoundError: ``parent_code`` does not exist for the tenant.
        """
        code = (code or "").strip()
        if not code or len(code) > ACCOUNT_CODE_MAX_LENGTH:
            raise ValidationError(
                f"Account code must be 1-{ACCOUNT_CODE_MAX_LENGTH} characters: {code!r}"
            )
        if security_level is not None and security_level < 0:
            raise ValidationError(f"Security level cannot be negative: {security_level}")
        if self._find_model(tenant_id, code) is not None:
            raise DuplicateAccountCodeError(code)

        parent_id = None
        if parent_code is not None:
            parent_id = self._get_model(tenant_id, parent_code).id

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=AccountType(account_type),
            is_active=True,
            security_level=security_level,
            parent_id=parent_id,
            tax_default_code=tax_default_code,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.ACCOUNT_CREATED,
            "Account",
            account.id,
            f"Account {code} created",
            {"code": code, "name": name, "account_type": account.account_type.value},
        )
        logger.info(
            "account_created",
            extra={"account_code": code, "account_type": account.account_type.value},
        )
        return AccountInfo.from_model(account)

    def _update(self, account: Account, actor_id: UUID, summary: str, details: dict,
                event_type: AuditEventType = AuditEventType.ACCOUNT_UPDATED) -> AccountInfo:
        account.updated_by_id = actor_id
        self.session.flush()
        self._auditor.log_event(
            account.tenant_id,
            actor_id,
            event_type,
            "Account",
            account.id,
            summary,
            details,
        )
        logger.info("account_updated", extra={"account_code": account.code, "changes": details})
        return AccountInfo.from_model(account)

    def rename_account(self, tenant_id: UUID, code: str, name: str, actor_id: UUID) -> AccountInfo:
        account = self._get_model(tenant_id, code)
        account.name = name
        return self._update(account, actor_id, f"Account {code} renamed", {"name": name})

    def deactivate_account(self, tenant_id: UUID, code: str, actor_id: UUID) -> AccountInfo:
        """Block new postings to the account; posted history is untouched."""
        account = self._get_model(tenant_id, code)
        account.is_active = False
        return self._update(
            account,
            actor_id,
            f"Account {code} deactivated",
            {"is_active": False},
            AuditEventType.ACCOUNT_DEACTIVATED,
        )

    def reactivate_account(self, tenant_id: UUID, code: str, actor_id: UUID) -> AccountInfo:
        account = self._get_model(tenant_id, code)
        account.is_active = True
        return self._update(account, actor_id, f"Account {code} reactivated", {"is_active": True})

    def set_security_level(
        self, tenant_id: UUID, code: str, security_level: int | None, actor_id: UUID
    ) -> AccountInfo:
        if security_level is not None and security_level < 0:
            raise ValidationError(f"Security level cannot be negative: {security_level}")
        account = self._get_model(tenant_id, code)
        account.security_level = security_level
        return self._update(
            account,
            actor_id,
            f"Account {code} security level changed",
            {"security_level": security_level},
        )

    def set_parent(
        self, tenant_id: UUID, code: str, parent_code: str | None, actor_id: UUID
    ) -> AccountInfo:
        """
        Move an account under ``parent_code`` (or to the root when None).

        Raises:
            AccountHierarchyError: If the move would create a cycle.
            ImmutabilityViolationError: If the account is already referenced
                by ledger entries (raised at flush).
        """
        account = self._get_model(tenant_id, code)
        if parent_code is None:
            account.parent_id = None
        else:
            parent = self._get_model(tenant_id, parent_code)
            self._check_no_cycle(account, parent)
            account.parent_id = parent.id
        return self._update(
            account,
            actor_id,
            f"Account {code} moved",
            {"parent_code": parent_code},
        )

    def _check_no_cycle(self, account: Account, parent: Account) -> None:
        seen: set[UUID] = set()
        node: Account | None = parent
        while node is not None:
            if node.id == account.id:
                raise AccountHierarchyError(account.code, f"{parent.code} is a descendant")
            if node.id in seen:
                raise AccountHierarchyError(account.code, "existing hierarchy has a cycle")
            seen.add(node.id)
            node = self.session.get(Account, node.parent_id) if node.parent_id else None
