"""Tests for business-day arithmetic and cooling-off expiry."""

from __future__ import annotations

from datetime import UTC, date, time
from zoneinfo import ZoneInfo

import pytest

from property_settlement.domain.cooling_off import (
    add_business_days,
    cooling_off_ends_at,
    is_business_day,
)

MONDAY = date(2026, 3, 2)
FRIDAY = date(2026, 3, 6)
SATURDAY = date(2026, 3, 7)


class TestIsBusinessDay:
    def test_weekdays(self) -> None:
        assert all(is_business_day(date(2026, 3, d)) for d in range(2, 7))

    def test_weekend(self) -> None:
        assert not is_business_day(SATURDAY)
        assert not is_business_day(date(2026, 3, 8))


class TestAddBusinessDays:
    def test_friday_plus_five_is_next_friday(self) -> None:
        assert add_business_days(FRIDAY, 5).date() == date(2026, 3, 13)

    def test_monday_plus_five_is_next_monday(self) -> None:
        assert add_business_days(MONDAY, 5).date() == date(2026, 3, 9)

    def test_start_day_is_not_counted(self) -> None:
        assert add_business_days(MONDAY, 1).date() == date(2026, 3, 3)

    def test_weekend_start_rolls_forward(self) -> None:
        # Saturday + 1 -> Monday
        assert add_business_days(SATURDAY, 1).date() == date(2026, 3, 9)

    def test_zero_days_is_end_of_start_day(self) -> None:
        assert add_business_days(MONDAY, 0).date() == MONDAY

    def test_ends_at_last_instant_of_day(self) -> None:
        ends = add_business_days(MONDAY, 5)
        assert ends.time() == time.max
        assert ends.tzinfo is UTC

    def test_jurisdiction_timezone(self) -> None:
        sydney = ZoneInfo("Australia/Sydney")
        ends = add_business_days(MONDAY, 5, tz=sydney)
        assert ends.tzinfo is sydney
        assert ends.date() == date(2026, 3, 9)

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not be negative"):
            add_business_days(MONDAY, -1)


class TestCoolingOffEndsAt:
    def test_default_is_five_business_days(self) -> None:
        assert cooling_off_ends_at(MONDAY) == add_business_days(MONDAY, 5)

    def test_custom_rule(self) -> None:
        assert cooling_off_ends_at(MONDAY, business_days=10).date() == date(2026, 3, 16)
