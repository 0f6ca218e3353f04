"""
Business-day calculator unit tests.

Tests cover:
  - Weekend and fixed-holiday skipping
  - Zero offset returns the start unchanged
  - Negative offsets are rejected
  - Time of day survives on datetimes
  - Inclusive business-day counting
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from licitaflow.core.exceptions import ValidationError
from licitaflow.services.business_days import (
    add_business_days,
    business_days_between,
    is_business_day,
    is_holiday,
)


class TestCalendar:
    def test_weekend_is_not_business_day(self):
        assert is_business_day(date(2025, 1, 4)) is False   # Saturday
        assert is_business_day(date(2025, 1, 5)) is False   # Sunday
        assert is_business_day(date(2025, 1, 6)) is True    # Monday

    def test_fixed_holidays_repeat_every_year(self):
        for year in (2024, 2025, 2031):
            assert is_holiday(date(year, 12, 25))
            assert is_holiday(date(year, 4, 21))
        assert not is_holiday(date(2025, 12, 24))

    def test_holiday_on_weekday_is_not_business_day(self):
        assert is_business_day(date(2025, 4, 21)) is False  # Tiradentes, Monday


class TestAddBusinessDays:
    def test_friday_plus_one_is_monday(self):
        assert add_business_days(date(2025, 1, 3), 1) == date(2025, 1, 6)

    def test_skips_holiday_and_weekend(self):
        # Fri 18/04 → Mon 21/04 is Tiradentes
        assert add_business_days(date(2025, 4, 18), 1) == date(2025, 4, 22)

    def test_skips_christmas(self):
        assert add_business_days(date(2024, 12, 20), 3) == date(2024, 12, 26)

    def test_zero_returns_start_even_on_weekend(self):
        saturday = date(2025, 1, 4)
        assert add_business_days(saturday, 0) == saturday

    def test_negative_raises(self):
        with pytest.raises(ValidationError):
            add_business_days(date(2025, 1, 3), -1)

    def test_datetime_keeps_time_of_day(self):
        start = datetime(2025, 1, 3, 14, 30, tzinfo=timezone.utc)
        result = add_business_days(start, 1)
        assert result == datetime(2025, 1, 6, 14, 30, tzinfo=timezone.utc)

    def test_start_never_counted(self):
        monday = date(2025, 1, 6)
        assert add_business_days(monday, 1) == date(2025, 1, 7)

    def test_result_is_always_a_business_day(self):
        # 2022 has Confraternização, Dia do Trabalho and Natal on weekends
        start = date(2022, 1, 1)
        for offset in range(365):
            day = start + timedelta(days=offset)
            for n in range(1, 31):
                assert is_business_day(add_business_days(day, n)), (day, n)

    @pytest.mark.parametrize("start", [
        date(2022, 1, 1), date(2022, 5, 1), date(2022, 12, 25), date(2023, 1, 1),
    ])
    def test_counts_exactly_n_from_weekend_holidays(self, start):
        for n in range(1, 31):
            result = add_business_days(start, n)
            assert is_business_day(result)
            assert business_days_between(start + timedelta(days=1), result) == n


class TestBusinessDaysBetween:
    def test_inclusive_range(self):
        # Wed 01/01 (holiday) .. Tue 07/01
        assert business_days_between(date(2025, 1, 1), date(2025, 1, 7)) == 4

    def test_same_business_day_counts_once(self):
        assert business_days_between(date(2025, 1, 6), date(2025, 1, 6)) == 1

    def test_end_before_start_is_zero(self):
        assert business_days_between(date(2025, 1, 7), date(2025, 1, 6)) == 0

    def test_accepts_datetimes(self):
        start = datetime(2025, 1, 6, 18, 0)
        end = datetime(2025, 1, 10, 8, 0)
        assert business_days_between(start, end) == 5
