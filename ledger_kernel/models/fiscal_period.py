"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal years and their accounting periods.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Periods of a fiscal year are contiguous, ordered by period_index and
      cover the year exactly (built by PeriodService.create_fiscal_year).
    - A date belongs to at most one period per tenant (fiscal years never
      overlap).
    - Status is OPEN or LOCKED.  Posting reads the status under a shared row
      lock so a concurrent lock and post are serialized.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import StrEnumType, TenantScoped, TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"


class FiscalYear(TenantScoped, TrackedBase):
    """A tenant's fiscal year, split into periods."""

    __tablename__ = "fiscal_years"
    __table_args__ = (
        UniqueConstraint("tenant_id", "label", name="uq_fiscal_year_tenant_label"),
    )

    label: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    periods: Mapped[list["FiscalPeriod"]] = relationship(
        back_populates="fiscal_year",
        order_by="FiscalPeriod.period_index",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<FiscalYear {self.label}: {self.start_date} to {self.end_date}>"


class FiscalPeriod(TenantScoped, TrackedBase):
    """An accounting period within a fiscal year."""

    __tablename__ = "fiscal_periods"
    __table_args__ = (
        UniqueConstraint("tenant_id", "period_code", name="uq_period_tenant_code"),
        UniqueConstraint("fiscal_year_id", "period_index", name="uq_period_year_index"),
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    fiscal_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_years.id"),
        nullable=False,
    )

    # 1-based position within the fiscal year
    period_index: Mapped[int] = mapped_column(Integer, nullable=False)

    period_code: Mapped[str] = mapped_column(String(30), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        StrEnumType(PeriodStatus),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    locked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    fiscal_year: Mapped[FiscalYear] = relationship(back_populates="periods")

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code}: {self.status.value}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
