"""
PeriodService -- fiscal calendar and period lock control.

Responsibility:
    Builds fiscal years and their contiguous periods, resolves the period
    covering a date, and moves periods between OPEN and LOCKED.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PostingService for every posting to resolve and check the
    covering period.

Invariants enforced:
    - Fiscal years of a tenant never overlap, so a date belongs to at most
      one period.
    - Periods of a year are contiguous and cover it exactly.
    - No covering period is a hard failure, never "implicitly open".
    - Lock/reopen take ``SELECT ... FOR UPDATE`` on the period row; posting
      reads it ``FOR SHARE``, so the two serialize.

Failure modes:
    - PeriodNotFoundError: No period covers the date (or code unknown).
    - PeriodOverlapError: New fiscal year overlaps an existing one.
    - PeriodStatusError: Locking a locked period or reopening an open one.
    - ValidationError: start_date after end_date, bad period length.
"""

import calendar
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import FiscalYearInfo, PeriodInfo
from ledger_kernel.exceptions import (
    ConflictError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStatusError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditEventType
from ledger_kernel.models.fiscal_period import FiscalPeriod, FiscalYear, PeriodStatus
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


def add_months(start: date, months: int) -> date:
    """``start`` shifted by ``months``, clamping the day to the month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class PeriodService(BaseService[FiscalPeriod]):
    """
    Service for the fiscal calendar.

    Contract:
        Accepts dates or period codes scoped by ``tenant_id`` and returns
        frozen ``PeriodInfo`` / ``FiscalYearInfo`` DTOs.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Locking a period never touches existing ledger entries.
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

    # ------------------------------------------------------------------
    # Fiscal years
    # ------------------------------------------------------------------

    def create_fiscal_year(
        self,
        tenant_id: UUID,
        label: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        period_months: int = 1,
    ) -> FiscalYearInfo:
        """
        Create a fiscal year split into contiguous periods of ``period_months``.

        The last period is shortened to end exactly on ``end_date``.

        Raises:
            ValidationError: If start_date > end_date or period_months < 1.
            ConflictError: If the label is already used by the tenant.
            PeriodOverlapError: If the range overlaps an existing fiscal year.
        """
        if start_date > end_date:
            raise ValidationError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )
        if period_months < 1:
            raise ValidationError(f"period_months must be at least 1, got {period_months}")

        existing_label = self.session.execute(
            select(FiscalYear.id).where(
                FiscalYear.tenant_id == tenant_id, FiscalYear.label == label
            )
        ).first()
        if existing_label is not None:
            raise ConflictError(f"Fiscal year label already exists: {label}")
        self._validate_no_overlap(tenant_id, label, start_date, end_date)

        fiscal_year = FiscalYear(
            tenant_id=tenant_id,
            label=label,
            start_date=start_date,
            end_date=end_date,
            created_by_id=actor_id,
        )
        self.session.add(fiscal_year)
        self.session.flush()

        period_start = start_date
        index = 1
        while period_start <= end_date:
            period_end = min(
                add_months(start_date, index * period_months) - timedelta(days=1),
                end_date,
            )
            self.session.add(
                FiscalPeriod(
                    tenant_id=tenant_id,
                    fiscal_year_id=fiscal_year.id,
                    period_index=index,
                    period_code=f"{label}-{index:02d}",
                    name=f"{label} period {index}",
                    start_date=period_start,
                    end_date=period_end,
                    status=PeriodStatus.OPEN,
                    created_by_id=actor_id,
                )
            )
            period_start = period_end + timedelta(days=1)
            index += 1
        self.session.flush()
        self.session.refresh(fiscal_year, ["periods"])

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.FISCAL_YEAR_CREATED,
            "FiscalYear",
            fiscal_year.id,
            f"Fiscal year {label} created with {index - 1} periods",
            {"label": label, "start_date": start_date, "end_date": end_date},
        )
        logger.info(
            "fiscal_year_created",
            extra={
                "label": label,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "period_count": index - 1,
            },
        )
        return FiscalYearInfo.from_model(fiscal_year)

    def _validate_no_overlap(
        self, tenant_id: UUID, label: str, start_date: date, end_date: date
    ) -> None:
        # Two ranges overlap if start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= end_date,
                FiscalYear.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise PeriodOverlapError(label, overlapping.label)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def period_model_for(self, tenant_id: UUID, effective_date: date, lock: bool = False) -> FiscalPeriod:
        """
        ORM period covering ``effective_date``, for use inside the kernel.

        With ``lock=True`` the row is read ``FOR SHARE`` so that a concurrent
        lock_period() waits for the posting to finish (or vice versa).

        Raises:
            PeriodNotFoundError: If no period covers the date.
        """
        stmt = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.start_date <= effective_date,
            FiscalPeriod.end_date >= effective_date,
        )
        if lock:
            stmt = stmt.with_for_update(read=True).execution_options(populate_existing=True)
        period = self.session.execute(stmt).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(effective_date)
        return period

    def period_for(self, tenant_id: UUID, effective_date: date) -> PeriodInfo:
        return PeriodInfo.from_model(self.period_model_for(tenant_id, effective_date))

    @staticmethod
    def is_open(period: PeriodInfo) -> bool:
        return period.is_open

    def get_period(self, tenant_id: UUID, period_code: str) -> PeriodInfo:
        return PeriodInfo.from_model(self._get_period(tenant_id, period_code))

    def list_periods(self, tenant_id: UUID, fiscal_year_label: str | None = None) -> list[PeriodInfo]:
        stmt = (
            select(FiscalPeriod)
            .where(FiscalPeriod.tenant_id == tenant_id)
            .order_by(FiscalPeriod.start_date)
        )
        if fiscal_year_label is not None:
            stmt = stmt.join(FiscalYear, FiscalPeriod.fiscal_year_id == FiscalYear.id).where(
                FiscalYear.label == fiscal_year_label
            )
        return [PeriodInfo.from_model(p) for p in self.session.execute(stmt).scalars()]

    def _get_period(self, tenant_id: UUID, period_code: str, for_update: bool = False) -> FiscalPeriod:
        stmt = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.period_code == period_code,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        period = self.session.execute(stmt).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(period_code)
        return period

    # ------------------------------------------------------------------
    # Lock control
    # ------------------------------------------------------------------

    def lock_period(self, tenant_id: UUID, period_code: str, actor_id: UUID) -> PeriodInfo:
        """
        Lock a period against new postings.

        Postconditions:
            - ``status`` is LOCKED, ``locked_at``/``locked_by_id`` set.
            - Ledger entries already in the period are untouched.

        Raises:
            PeriodNotFoundError: Unknown period code.
            PeriodStatusError: Period already locked.
        """
        period = self._get_period(tenant_id, period_code, for_update=True)
        if period.status == PeriodStatus.LOCKED:
            raise PeriodStatusError(period_code, period.status.value, "lock")

        period.status = PeriodStatus.LOCKED
        period.locked_at = self._clock.now()
        period.locked_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.PERIOD_LOCKED,
            "FiscalPeriod",
            period.id,
            f"Period {period_code} locked",
        )
        logger.info("period_locked", extra={"period_code": period_code})
        return PeriodInfo.from_model(period)

    def reopen_period(self, tenant_id: UUID, period_code: str, actor_id: UUID) -> PeriodInfo:
        """
        Raises:
            PeriodNotFoundError: Unknown period code.
            PeriodStatusError: Period is already open.
        """
        period = self._get_period(tenant_id, period_code, for_update=True)
        if period.status == PeriodStatus.OPEN:
            raise PeriodStatusError(period_code, period.status.value, "reopen")

        period.status = PeriodStatus.OPEN
        period.locked_at = None
        period.locked_by_id = None
        period.updated_by_id = actor_id
        self.session.flush()

        self._auditor.log_event(
            tenant_id,
            actor_id,
            AuditEventType.PERIOD_REOPENED,
            "FiscalPeriod",
            period.id,
            f"Period {period_code} reopened",
        )
        logger.info("period_reopened", extra={"period_code": period_code})
        return PeriodInfo.from_model(period)
