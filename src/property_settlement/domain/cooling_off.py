"""Cooling-off period arithmetic.

Pure functions, no I/O. A cooling-off period runs for a number of business
days after exchange and ends at the very end of the last business day.
Weekends never count; public holidays are not modelled.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo

DEFAULT_COOLING_OFF_BUSINESS_DAYS = 5

_SATURDAY = 5


def is_business_day(day: date) -> bool:
    return day.weekday() < _SATURDAY


def add_business_days(start: date, count: int, tz: tzinfo = UTC) -> datetime:
    """Return the end of the ``count``-th business day after ``start``.

    The start day itself is never counted. Days are advanced one at a time
    and Saturdays and Sundays are skipped, so a Friday start with a count of
    5 ends on the following Friday and a Monday start ends the next Monday.

    Args:
        start: The exchange date (or any anchor date).
        count: Number of business days to add. Must not be negative.
        tz: Timezone of the jurisdiction the period is measured in.

    Returns:
        23:59:59.999999 on the final qualifying business day, in ``tz``.
    """
    if count < 0:
        raise ValueError(f"count must not be negative, got {count}")

    day = start
    added = 0
    while added < count:
        day += timedelta(days=1)
        if is_business_day(day):
            added += 1

    return datetime.combine(day, time.max, tzinfo=tz)


def cooling_off_ends_at(
    exchange_date: date,
    business_days: int = DEFAULT_COOLING_OFF_BUSINESS_DAYS,
    tz: tzinfo = UTC,
) -> datetime:
    """Cooling-off expiry for a contract exchanged on ``exchange_date``."""
    return add_business_days(exchange_date, business_days, tz=tz)
