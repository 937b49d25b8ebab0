"""Day calculator — chargeable days for a date range and duration mode."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from leavedesk.common.constants import HALF_DAY_CHARGE, LeaveDuration
from leavedesk.common.exceptions import InvalidRangeError


def validate_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise InvalidRangeError(start_date, end_date)


def calculate_leave_days(
    start_date: date,
    end_date: date,
    duration: LeaveDuration = LeaveDuration.full_day,
) -> Decimal:
    """Return the number of days a request charges against its balance.

    ``full-day`` counts every calendar day of the inclusive range (weekends
    and holidays included). Both half-day modes charge ``HALF_DAY_CHARGE``
    regardless of how many days the range spans.

    Raises:
        InvalidRangeError: *start_date* is after *end_date*.
    """
    validate_range(start_date, end_date)

    if duration in (LeaveDuration.half_day_morning, LeaveDuration.half_day_afternoon):
        return HALF_DAY_CHARGE

    return Decimal((end_date - start_date).days + 1)
