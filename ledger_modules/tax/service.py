"""
Tax Service -- tax codes, taxed draft lines and tax summaries.

Responsibility:
    Thin glue connecting the pure tax calculator to the kernel.  Tax
    arithmetic is delegated to ``ledger_modules.tax.calculator``; draft
    lines go through ``TransactionService``; summaries read posted entries
    through ``LedgerSelector``.

Architecture:
    ledger_modules -- modules layer.  Imports kernel services; the kernel
    never imports this module.

Invariants:
    - Tax code is unique per tenant; rate is a fraction in [0, 1] with at
      most four decimal places.
    - A taxed line never changes the balance of its draft: the tax line is
      a separate line on the tax account in the same direction as the net
      line, and the caller balances the counter line.
    - The tax line carries its tax code and is marked is_tax_line, so
      summaries report the net base and the tax actually posted apart.
    - Amounts are ``Decimal`` throughout -- NEVER ``float``.

Failure modes:
    - TaxCodeNotFoundError, DuplicateTaxCodeError, ValidationError,
      TransactionNotDraftError, AccountNotFoundError.

Usage:
    codes = TaxCodeService(session, clock)
    codes.create_default_tax_codes(tenant_id, actor_id)

    tax = TaxService(session, clock)
    tax.add_taxed_line(tenant_id, draft.id, LineSpec.credit("4000", "100.00",
                       tax_code="GST"), tax_account_code="2200", actor_id=actor_id)
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.amounts import ZERO, to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, TransactionLineInfo
from ledger_kernel.exceptions import (
    DuplicateTaxCodeError,
    TaxCodeNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.transaction_service import TransactionService
from ledger_modules.tax.calculator import compute_tax, split_gross
from ledger_modules.tax.config import DefaultTaxCode, TaxConfig
from ledger_modules.tax.models import TaxCodeInfo, TaxSummary, TaxSummaryLine, TaxType
from ledger_modules.tax.orm import TaxCodeModel

logger = get_logger("modules.tax.service")

RATE_QUANTUM = Decimal("0.0001")

_UNSET = object()


def _validate_rate(rate: Decimal | str | int) -> Decimal:
    value = to_decimal(rate)
    if not Decimal("0") <= value <= Decimal("1"):
        raise ValidationError(f"Tax rate must be a fraction between 0 and 1, got {value}")
    if value != value.quantize(RATE_QUANTUM):
        raise ValidationError(f"Tax rate has more than four decimal places: {value}")
    return value.quantize(RATE_QUANTUM)


class TaxCodeService:
    """
    Manages a tenant's tax codes.

    Contract:
        Reads and writes return frozen ``TaxCodeInfo`` DTOs.  Writes are
        audited (TAXCODE_CREATED / TAXCODE_UPDATED / TAXCODE_DEACTIVATED).

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Changing a rate never recalculates posted history.
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

    def _find_model(self, tenant_id: UUID, code: str) -> TaxCodeModel | None:
        return self._session.execute(
            select(TaxCodeModel).where(
                TaxCodeModel.tenant_id == tenant_id,
                TaxCodeModel.code == code,
            )
        ).scalar_one_or_none()

    def _get_model(self, tenant_id: UUID, code: str) -> TaxCodeModel:
        model = self._find_model(tenant_id, code)
        if model is None:
            raise TaxCodeNotFoundError(code)
        return model

    def find_by_code(self, tenant_id: UUID, code: str) -> TaxCodeInfo:
        """
        Raises:
            TaxCodeNotFoundError: Unknown code for the tenant.
        """
        return self._get_model(tenant_id, code).to_dto()

    def list_tax_codes(self, tenant_id: UUID, active_only: bool = False) -> list[TaxCodeInfo]:
        stmt = (
            select(TaxCodeModel)
            .where(TaxCodeModel.tenant_id == tenant_id)
            .order_by(TaxCodeModel.code)
        )
        if active_only:
            stmt = stmt.where(TaxCodeModel.is_active.is_(True))
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def list_active(self, tenant_id: UUID) -> list[TaxCodeInfo]:
        return self.list_tax_codes(tenant_id, active_only=True)

    def create_tax_code(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        rate: Decimal | str | int,
        tax_type: TaxType,
        actor_id: UUID,
        report_box: str | None = None,
    ) -> TaxCodeInfo:
        """
        Create a tax code.

        Raises:
            DuplicateTaxCodeError: Code already exists for the tenant.
            ValidationError: Empty code or rate outside [0, 1].
        """
        code = (code or "").strip()
        if not code:
            raise ValidationError("Tax code cannot be empty")
        value = _validate_rate(rate)
        if self._find_model(tenant_id, code) is not None:
            raise DuplicateTaxCodeError(code)

        model = TaxCodeModel(
            tenant_id=tenant_id,
            code=code,
            name=name,
            rate=value,
            tax_type=TaxType(tax_type),
            report_box=report_box,
            is_active=True,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.TAXCODE_CREATED,
            "TaxCode",
            model.id,
            f"Created tax code: {code} - {name} @ {value}",
            {"code": code, "rate": value, "tax_type": model.tax_type.value},
        )
        logger.info("tax_code_created", extra={"tax_code": code, "rate": str(value)})
        return model.to_dto()

    def update_tax_code(
        self,
        tenant_id: UUID,
        code: str,
        actor_id: UUID,
        *,
        name: str | None = None,
        rate: Decimal | str | None = None,
        tax_type: TaxType | None = None,
        report_box=_UNSET,
    ) -> TaxCodeInfo:
        """Edit a tax code; only changed fields are audited, as from/to pairs."""
        model = self._get_model(tenant_id, code)
        changes: dict[str, dict] = {}

        if name is not None and name != model.name:
            changes["name"] = {"from": model.name, "to": name}
            model.name = name
        if rate is not None:
            value = _validate_rate(rate)
            if value != model.rate:
                changes["rate"] = {"from": str(model.rate), "to": str(value)}
                model.rate = value
        if tax_type is not None and TaxType(tax_type) != model.tax_type:
            changes["tax_type"] = {"from": model.tax_type.value, "to": TaxType(tax_type).value}
            model.tax_type = TaxType(tax_type)
        if report_box is not _UNSET and report_box != model.report_box:
            changes["report_box"] = {"from": model.report_box, "to": report_box}
            model.report_box = report_box

        if not changes:
            return model.to_dto()

        model.updated_by_id = actor_id
        self._session.flush()
        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.TAXCODE_UPDATED,
            "TaxCode",
            model.id,
            f"Updated tax code: {code}",
            changes,
        )
        logger.info("tax_code_updated", extra={"tax_code": code, "changes": sorted(changes)})
        return model.to_dto()

    def deactivate_tax_code(self, tenant_id: UUID, code: str, actor_id: UUID) -> TaxCodeInfo:
        """Soft delete: the code stays resolvable for history and summaries."""
        model = self._get_model(tenant_id, code)
        model.is_active = False
        model.updated_by_id = actor_id
        self._session.flush()
        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.TAXCODE_DEACTIVATED,
            "TaxCode",
            model.id,
            f"Deactivated tax code: {code}",
        )
        logger.info("tax_code_deactivated", extra={"tax_code": code})
        return model.to_dto()

    def create_default_tax_codes(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        codes: Iterable[DefaultTaxCode] | None = None,
    ) -> list[TaxCodeInfo]:
        """Seed the tenant's tax codes; codes that already exist are skipped."""
        if codes is None:
            codes = TaxConfig.with_defaults().default_codes
        created = []
        for default in codes:
            if self._find_model(tenant_id, default.code) is not None:
                continue
            created.append(
                self.create_tax_code(
                    tenant_id,
                    default.code,
                    default.name,
                    default.rate,
                    default.tax_type,
                    actor_id,
                    report_box=default.report_box,
                )
            )
        return created


class TaxService:
    """
    Taxed draft lines and tax-return summaries.

    Contract:
        ``add_taxed_line`` edits a DRAFT only; ``tax_summary`` is a read-only
        projection over posted ledger entries.
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
        self._codes = TaxCodeService(session, self._clock, self._auditor)
        self._transactions = TransactionService(session, self._clock, self._auditor)
        self._accounts = AccountService(session, self._auditor)
        self._selector = LedgerSelector(session)

    def calculate(self, tenant_id: UUID, tax_code: str, taxable_amount: Decimal | str) -> Decimal:
        """Tax on a tax-exclusive amount using the tenant's code."""
        return compute_tax(self._codes.find_by_code(tenant_id, tax_code), taxable_amount)

    def add_taxed_line(
        self,
        tenant_id: UUID,
        transaction_id: UUID,
        spec: LineSpec,
        tax_account_code: str,
        actor_id: UUID,
        amount_includes_tax: bool = False,
    ) -> tuple[TransactionLineInfo, TransactionLineInfo | None]:
        """
        Add a net line and its tax line to a draft.

        The tax code is the line's, else the account's default.  With
        ``amount_includes_tax`` the line amount is gross and is split into
        net and tax.  No tax line is added when the tax is zero.

        Returns:
            (net line, tax line or None)

        Raises:
            ValidationError: No tax code on the line or the account.
            TaxCodeNotFoundError: Unknown tax code.
            TransactionNotDraftError: The transaction is already posted.
        """
        transaction = self._transactions.load_draft(tenant_id, transaction_id)
        account = self._accounts.find_by_code(tenant_id, spec.account_code)
        code = spec.tax_code if spec.tax_code is not None else account.tax_default_code
        if code is None:
            raise ValidationError(
                f"No tax code on the line or as default of account {account.code}"
            )
        tax_code = self._codes.find_by_code(tenant_id, code)

        if amount_includes_tax:
            net, tax = split_gross(tax_code, spec.amount)
        else:
            net, tax = spec.amount, compute_tax(tax_code, spec.amount)

        net_line = self._transactions.append_line(
            transaction,
            account_id=account.id,
            direction=spec.direction,
            amount=net,
            actor_id=actor_id,
            tax_code=tax_code.code,
            department=spec.department,
            memo=spec.memo,
        )
        tax_line = None
        if tax > ZERO:
            tax_account = self._accounts.find_by_code(tenant_id, tax_account_code)
            tax_line = self._transactions.append_line(
                transaction,
                account_id=tax_account.id,
                direction=spec.direction,
                amount=tax,
                actor_id=actor_id,
                tax_code=tax_code.code,
                is_tax_line=True,
                department=spec.department,
                memo=f"{tax_code.name} on line {net_line.line_seq}",
            )
        transaction.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "taxed_line_added",
            extra={
                "transaction_id": str(transaction_id),
                "tax_code": tax_code.code,
                "net": str(net),
                "tax": str(tax),
            },
        )
        return (
            TransactionLineInfo.from_model(net_line),
            TransactionLineInfo.from_model(tax_line) if tax_line is not None else None,
        )

    def tax_summary(self, tenant_id: UUID, start_date: date, end_date: date) -> TaxSummary:
        """
        Aggregate posted entries by tax code for a tax return.

        Tax figures are the tax lines actually posted, so a later rate change
        does not restate past periods and per-line rounding is kept.  The
        rate shown is the code's current one.

        Entries whose tax code is unknown to the tenant contribute nothing
        and are logged.  The same range always yields the same summary; an
        empty range (start after end) yields no lines.
        """
        codes = {c.code: c for c in self._codes.list_tax_codes(tenant_id)}

        lines = []
        for row in self._selector.tax_activity(tenant_id, start_date, end_date):
            tax_code = codes.get(row.tax_code)
            if tax_code is None:
                logger.warning(
                    "tax_summary_unknown_code",
                    extra={"tax_code": row.tax_code, "entry_count": row.entry_count},
                )
                continue
            lines.append(
                TaxSummaryLine(
                    tax_code=tax_code.code,
                    name=tax_code.name,
                    tax_type=tax_code.tax_type,
                    rate=tax_code.rate,
                    report_box=tax_code.report_box,
                    input_base=row.debit_total,
                    output_base=row.credit_total,
                    input_tax=row.tax_debit_total,
                    output_tax=row.tax_credit_total,
                    entry_count=row.entry_count,
                )
            )

        summary = TaxSummary(start_date=start_date, end_date=end_date, lines=tuple(lines))
        logger.info(
            "tax_summary_generated",
            extra={
                "start_date": str(start_date),
                "end_date": str(end_date),
                "code_count": len(lines),
                "net_tax_payable": str(summary.net_tax_payable),
            },
        )
        return summary
