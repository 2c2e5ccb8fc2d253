"""
Period calendar tests.

Verifies:
- Fiscal years split into contiguous, non-overlapping periods
- Quarterly splits and short final periods
- Overlapping or duplicate fiscal years are rejected
- period_for lookups, including dates outside the calendar
- Lock/reopen transitions, their audit trail and invalid transitions
- Calendars are tenant scoped
"""

from datetime import date, timedelta

import pytest

from ledger_kernel.exceptions import (
    ConflictError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStatusError,
    ValidationError,
)
from ledger_kernel.models.fiscal_period import PeriodStatus
from ledger_kernel.services.period_service import add_months


class TestCreateFiscalYear:
    def test_monthly_periods(self, fiscal_year):
        periods = fiscal_year.periods

        assert len(periods) == 12
        assert [p.period_code for p in periods[:3]] == ["FY2024-01", "FY2024-02", "FY2024-03"]
        assert periods[0].start_date == date(2024, 1, 1)
        assert periods[1].end_date == date(2024, 2, 29)
        assert periods[-1].end_date == date(2024, 12, 31)
        assert all(p.status == PeriodStatus.OPEN for p in periods)

    def test_periods_are_contiguous(self, fiscal_year):
        periods = fiscal_year.periods
        for previous, current in zip(periods, periods[1:]):
            assert current.start_date == previous.end_date + timedelta(days=1)

    def test_quarterly_periods(self, period_service, tenant_id, test_actor_id):
        fy = period_service.create_fiscal_year(
            tenant_id, "FY2025", date(2025, 4, 1), date(2026, 3, 31), test_actor_id,
            period_months=3,
        )

        assert [(p.start_date, p.end_date) for p in fy.periods] == [
            (date(2025, 4, 1), date(2025, 6, 30)),
            (date(2025, 7, 1), date(2025, 9, 30)),
            (date(2025, 10, 1), date(2025, 12, 31)),
            (date(2026, 1, 1), date(2026, 3, 31)),
        ]

    def test_short_final_period(self, period_service, tenant_id, test_actor_id):
        fy = period_service.create_fiscal_year(
            tenant_id, "SHORT", date(2024, 1, 1), date(2024, 2, 10), test_actor_id
        )

        assert len(fy.periods) == 2
        assert fy.periods[-1].end_date == date(2024, 2, 10)

    def test_month_end_start_dates(self, period_service, tenant_id, test_actor_id):
        fy = period_service.create_fiscal_year(
            tenant_id, "EOM", date(2024, 1, 31), date(2024, 4, 29), test_actor_id
        )

        assert fy.periods[0].end_date == date(2024, 2, 28)
        assert fy.periods[1].start_date == date(2024, 2, 29)

    def test_start_after_end_rejected(self, period_service, tenant_id, test_actor_id):
        with pytest.raises(ValidationError):
            period_service.create_fiscal_year(
                tenant_id, "BAD", date(2024, 12, 31), date(2024, 1, 1), test_actor_id
            )

    def test_zero_period_months_rejected(self, period_service, tenant_id, test_actor_id):
        with pytest.raises(ValidationError):
            period_service.create_fiscal_year(
                tenant_id, "BAD", date(2024, 1, 1), date(2024, 12, 31), test_actor_id,
                period_months=0,
            )

    def test_overlap_rejected(self, fiscal_year, period_service, tenant_id, test_actor_id):
        with pytest.raises(PeriodOverlapError) as exc_info:
            period_service.create_fiscal_year(
                tenant_id, "FY2024B", date(2024, 7, 1), date(2025, 6, 30), test_actor_id
            )
        assert exc_info.value.existing_label == "FY2024"

    def test_duplicate_label_rejected(self, fiscal_year, period_service, tenant_id, test_actor_id):
        with pytest.raises(ConflictError):
            period_service.create_fiscal_year(
                tenant_id, "FY2024", date(2025, 1, 1), date(2025, 12, 31), test_actor_id
            )

    def test_adjacent_year_allowed(self, fiscal_year, period_service, tenant_id, test_actor_id):
        fy = period_service.create_fiscal_year(
            tenant_id, "FY2025", date(2025, 1, 1), date(2025, 12, 31), test_actor_id
        )
        assert len(fy.periods) == 12

    def test_other_tenant_may_overlap(
        self, fiscal_year, period_service, other_tenant_id, test_actor_id,
    ):
        fy = period_service.create_fiscal_year(
            other_tenant_id, "FY2024", date(2024, 1, 1), date(2024, 12, 31), test_actor_id
        )
        assert fy.label == "FY2024"

    def test_creation_audited(self, fiscal_year, auditor_service, tenant_id):
        trace = auditor_service.get_trace(tenant_id, "FiscalYear", fiscal_year.id)
        assert trace.event_types == ("FISCAL_YEAR_CREATED",)


class TestAddMonths:
    @pytest.mark.parametrize(
        "start, months, expected",
        [
            (date(2024, 1, 15), 1, date(2024, 2, 15)),
            (date(2024, 1, 31), 1, date(2024, 2, 29)),
            (date(2023, 1, 31), 1, date(2023, 2, 28)),
            (date(2024, 11, 30), 3, date(2025, 2, 28)),
            (date(2024, 1, 1), 12, date(2025, 1, 1)),
        ],
    )
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected


class TestPeriodLookup:
    def test_period_for_date(self, fiscal_year, period_service, tenant_id):
        period = period_service.period_for(tenant_id, date(2024, 3, 15))

        assert period.period_code == "FY2024-03"
        assert period.contains_date(date(2024, 3, 15))

    def test_date_outside_calendar(self, fiscal_year, period_service, tenant_id):
        with pytest.raises(PeriodNotFoundError):
            period_service.period_for(tenant_id, date(2023, 12, 31))

    def test_unknown_period_code(self, fiscal_year, period_service, tenant_id):
        with pytest.raises(PeriodNotFoundError):
            period_service.get_period(tenant_id, "FY1999-01")

    def test_list_periods_by_year(self, fiscal_year, period_service, tenant_id, test_actor_id):
        period_service.create_fiscal_year(
            tenant_id, "FY2025", date(2025, 1, 1), date(2025, 12, 31), test_actor_id,
            period_months=6,
        )

        assert len(period_service.list_periods(tenant_id)) == 14
        assert len(period_service.list_periods(tenant_id, "FY2025")) == 2

    def test_lookup_is_tenant_scoped(self, fiscal_year, period_service, other_tenant_id):
        with pytest.raises(PeriodNotFoundError):
            period_service.period_for(other_tenant_id, date(2024, 3, 15))


class TestLockControl:
    def test_lock_and_reopen(self, fiscal_year, period_service, tenant_id, test_actor_id):
        locked = period_service.lock_period(tenant_id, "FY2024-01", test_actor_id)
        assert locked.status == PeriodStatus.LOCKED
        assert not locked.is_open

        reopened = period_service.reopen_period(tenant_id, "FY2024-01", test_actor_id)
        assert reopened.status == PeriodStatus.OPEN

    def test_lock_only_affects_target_period(
        self, fiscal_year, period_service, tenant_id, test_actor_id,
    ):
        period_service.lock_period(tenant_id, "FY2024-01", test_actor_id)

        statuses = {p.period_code: p.status for p in period_service.list_periods(tenant_id)}
        assert statuses["FY2024-01"] == PeriodStatus.LOCKED
        assert statuses["FY2024-02"] == PeriodStatus.OPEN

    def test_double_lock_rejected(self, fiscal_year, period_service, tenant_id, test_actor_id):
        period_service.lock_period(tenant_id, "FY2024-01", test_actor_id)

        with pytest.raises(PeriodStatusError):
            period_service.lock_period(tenant_id, "FY2024-01", test_actor_id)

    def test_reopen_open_period_rejected(self, fiscal_year, period_service, tenant_id, test_actor_id):
        with pytest.raises(PeriodStatusError):
            period_service.reopen_period(tenant_id, "FY2024-01", test_actor_id)

    def test_lock_cycle_audited(
        self, fiscal_year, period_service, auditor_service, tenant_id, test_actor_id,
    ):
        period = period_service.lock_period(tenant_id, "FY2024-05", test_actor_id)
        period_service.reopen_period(tenant_id, "FY2024-05", test_actor_id)

        trace = auditor_service.get_trace(tenant_id, "FiscalPeriod", period.id)
        assert sorted(trace.event_types) == ["PERIOD_LOCKED", "PERIOD_REOPENED"]
