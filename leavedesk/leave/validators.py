"""Leave request validation: date rules, day count, and the balance check.

Nothing in here writes to the database. ``validate_and_compute`` either
returns the derived values for a new request or raises one of the
``LeaveRuleViolation`` subclasses.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import LeaveType
from leavedesk.common.exceptions import (
    InsufficientBalanceError,
    InvalidRangeError,
    PastDateError,
    ValidationException,
)
from leavedesk.leave.models import LeaveBalance

DateLike = Union[date, datetime]

SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class ValidatedLeave:
    total_days: int
    academic_year: str


def compute_total_days(start: DateLike, end: DateLike) -> int:
    """Inclusive day count: ``ceil((end - start) / 1 day) + 1``.

    Works for dates and datetimes; a partial trailing day counts as a
    whole day.
    """
    if isinstance(start, datetime) and isinstance(end, datetime):
        delta = (end - start).total_seconds()
        return math.ceil(delta / SECONDS_PER_DAY) + 1
    return (_as_date(end) - _as_date(start)).days + 1


def default_academic_year(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return str(now.year)


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def check_dates(start: DateLike, end: DateLike, now: datetime) -> None:
    """Range first, then the past-date rule.

    A plain date starts at midnight UTC, so a start date of today is
    already in the past once the day has begun.
    """
    if start >= end:
        raise InvalidRangeError()

    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min, tzinfo=timezone.utc)
        if now.tzinfo is None:
            start = start.replace(tzinfo=None)
    if start < now:
        raise PastDateError()


async def get_ledger_row(
    db: AsyncSession,
    employee_id: uuid.UUID,
    academic_year: str,
    leave_type: LeaveType,
) -> Optional[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.academic_year == academic_year,
            LeaveBalance.leave_type == leave_type,
        )
    )
    return result.scalars().first()


async def validate_and_compute(
    db: AsyncSession,
    *,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    start_date: DateLike,
    end_date: DateLike,
    reason: str,
    academic_year: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ValidatedLeave:
    """Check a prospective request and derive ``total_days`` / ``academic_year``.

    Raises:
        ValidationException: blank reason.
        InvalidRangeError: start is not before end.
        PastDateError: start lies before *now* (today, for plain dates).
        InsufficientBalanceError: a ledger row exists for the employee,
            year and type, and its ``remaining`` is below the day count.
    """
    now = now or datetime.now(timezone.utc)

    if not reason or not reason.strip():
        raise ValidationException({"reason": ["must not be empty"]})

    check_dates(start_date, end_date, now)

    total_days = compute_total_days(start_date, end_date)
    year = academic_year or default_academic_year(now)

    # No ledger row means nothing was provisioned: the request is not capped.
    balance = await get_ledger_row(db, employee_id, year, leave_type)
    if balance is not None and balance.remaining < total_days:
        raise InsufficientBalanceError(
            available=balance.remaining, requested=total_days,
        )

    return ValidatedLeave(total_days=total_days, academic_year=year)
