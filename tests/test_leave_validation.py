"""Tests for leave request validation — day count, date rules, balance check.

Pure helpers are tested without a database; validate_and_compute runs
against the in-memory SQLite ledger.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import LeaveType
from leavedesk.common.exceptions import (
    InsufficientBalanceError,
    InvalidRangeError,
    LeaveRuleViolation,
    PastDateError,
    ValidationException,
)
from leavedesk.leave.validators import (
    check_dates,
    compute_total_days,
    default_academic_year,
    validate_and_compute,
)
from tests.conftest import CURRENT_YEAR, _seed_balance, future


# ═════════════════════════════════════════════════════════════════════
# compute_total_days
# ═════════════════════════════════════════════════════════════════════


class TestComputeTotalDays:
    """Inclusive day count between two dates."""

    def test_three_day_range(self):
        assert compute_total_days(date(2025, 6, 1), date(2025, 6, 3)) == 3

    def test_adjacent_days(self):
        assert compute_total_days(date(2025, 6, 1), date(2025, 6, 2)) == 2

    def test_across_month_boundary(self):
        assert compute_total_days(date(2025, 1, 30), date(2025, 2, 2)) == 4

    def test_datetimes_partial_day_rounds_up(self):
        """Half a day between instants counts as a whole day, plus one."""
        start = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
        end = datetime(2025, 6, 1, 21, 0, tzinfo=timezone.utc)
        assert compute_total_days(start, end) == 2

    def test_datetimes_exact_days(self):
        start = datetime(2025, 6, 1, tzinfo=timezone.utc)
        end = datetime(2025, 6, 3, tzinfo=timezone.utc)
        assert compute_total_days(start, end) == 3


class TestDefaultAcademicYear:

    def test_uses_calendar_year(self):
        now = datetime(2027, 3, 15, tzinfo=timezone.utc)
        assert default_academic_year(now) == "2027"

    def test_defaults_to_now(self):
        assert default_academic_year() == CURRENT_YEAR


# ═════════════════════════════════════════════════════════════════════
# check_dates
# ═════════════════════════════════════════════════════════════════════


class TestCheckDates:
    """Range ordering and the past-date rule."""

    NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)

    def test_valid_future_range(self):
        check_dates(date(2026, 5, 11), date(2026, 5, 12), self.NOW)

    def test_today_is_already_past(self):
        with pytest.raises(PastDateError):
            check_dates(date(2026, 5, 10), date(2026, 5, 12), self.NOW)

    def test_today_allowed_only_at_midnight(self):
        midnight = datetime(2026, 5, 10, tzinfo=timezone.utc)
        check_dates(date(2026, 5, 10), date(2026, 5, 12), midnight)

    def test_later_today_as_datetime_is_allowed(self):
        check_dates(
            datetime(2026, 5, 10, 15, 0, tzinfo=timezone.utc),
            datetime(2026, 5, 11, 15, 0, tzinfo=timezone.utc),
            self.NOW,
        )

    def test_end_equal_to_start_rejected(self):
        with pytest.raises(InvalidRangeError) as exc_info:
            check_dates(date(2026, 5, 12), date(2026, 5, 12), self.NOW)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "End date must be after start date."

    def test_end_before_start_rejected(self):
        with pytest.raises(InvalidRangeError):
            check_dates(date(2026, 5, 14), date(2026, 5, 12), self.NOW)

    def test_past_start_rejected(self):
        with pytest.raises(PastDateError) as exc_info:
            check_dates(date(2026, 5, 9), date(2026, 5, 12), self.NOW)
        assert exc_info.value.detail == "Cannot request leave for past dates."

    def test_range_checked_before_past_date(self):
        """A past, inverted range reports the range error."""
        with pytest.raises(InvalidRangeError):
            check_dates(date(2026, 5, 3), date(2026, 5, 1), self.NOW)

    def test_past_instant_rejected_for_datetimes(self):
        start = self.NOW - timedelta(hours=1)
        with pytest.raises(PastDateError):
            check_dates(start, self.NOW + timedelta(days=1), self.NOW)

    def test_both_are_leave_rule_violations(self):
        assert issubclass(InvalidRangeError, LeaveRuleViolation)
        assert issubclass(PastDateError, LeaveRuleViolation)
        assert issubclass(InsufficientBalanceError, LeaveRuleViolation)


# ═════════════════════════════════════════════════════════════════════
# validate_and_compute
# ═════════════════════════════════════════════════════════════════════


class TestValidateAndCompute:
    """Full validation against the balance ledger."""

    async def test_returns_days_and_year(self, db: AsyncSession, employee):
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.vacation,
            start_date=future(3),
            end_date=future(5),
            reason="Trip",
        )
        assert result.total_days == 3
        assert result.academic_year == CURRENT_YEAR

    async def test_explicit_academic_year_kept(self, db: AsyncSession, employee):
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.sick,
            start_date=future(1),
            end_date=future(2),
            reason="Flu",
            academic_year="2031",
        )
        assert result.academic_year == "2031"

    async def test_blank_reason_rejected(self, db: AsyncSession, employee):
        with pytest.raises(ValidationException) as exc_info:
            await validate_and_compute(
                db,
                employee_id=employee.id,
                leave_type=LeaveType.vacation,
                start_date=future(1),
                end_date=future(2),
                reason="   ",
            )
        assert "reason" in exc_info.value.errors

    async def test_no_ledger_row_means_no_cap(self, db: AsyncSession, employee):
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.personal,
            start_date=future(1),
            end_date=future(60),
            reason="Sabbatical",
        )
        assert result.total_days == 60

    async def test_request_within_balance(self, db: AsyncSession, employee):
        await _seed_balance(db, employee.id, total_allocated=5, used=2)
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.vacation,
            start_date=future(10),
            end_date=future(12),
            reason="Exactly what is left",
        )
        assert result.total_days == 3

    async def test_insufficient_balance(self, db: AsyncSession, employee):
        await _seed_balance(db, employee.id, total_allocated=5, used=3)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            await validate_and_compute(
                db,
                employee_id=employee.id,
                leave_type=LeaveType.vacation,
                start_date=future(10),
                end_date=future(12),
                reason="Too long",
            )
        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3
        assert exc_info.value.detail == (
            "Insufficient leave balance. Available: 2 days, Requested: 3 days"
        )

    async def test_balance_of_other_type_ignored(self, db: AsyncSession, employee):
        await _seed_balance(
            db, employee.id, leave_type=LeaveType.sick, total_allocated=0,
        )
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.vacation,
            start_date=future(1),
            end_date=future(4),
            reason="Holiday",
        )
        assert result.total_days == 4

    async def test_balance_of_other_year_ignored(self, db: AsyncSession, employee):
        await _seed_balance(db, employee.id, total_allocated=0, academic_year="1999")
        result = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=LeaveType.vacation,
            start_date=future(1),
            end_date=future(2),
            reason="Holiday",
        )
        assert result.total_days == 2

    async def test_past_date_rejected_before_balance(self, db: AsyncSession, employee):
        await _seed_balance(db, employee.id, total_allocated=0)
        with pytest.raises(PastDateError):
            await validate_and_compute(
                db,
                employee_id=employee.id,
                leave_type=LeaveType.vacation,
                start_date=future(-2),
                end_date=future(1),
                reason="Backdated",
            )
