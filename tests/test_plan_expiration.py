"""
Tests for the interval-based plan expiration fallback.

Run with: pytest tests/test_plan_expiration.py -v
"""

import calendar
from datetime import datetime, timedelta

import pytest

from services.billing import calculate_plan_expires_from_interval


class TestMonthlyInterval:
    def test_end_of_january_clamps_to_february_in_common_year(self):
        result = calculate_plan_expires_from_interval("month", datetime(2023, 1, 31, 10, 30))
        assert result == datetime(2023, 2, 28, 10, 30)

    def test_end_of_january_clamps_to_february_29_in_leap_year(self):
        result = calculate_plan_expires_from_interval("month", datetime(2024, 1, 31))
        assert result == datetime(2024, 2, 29)

    def test_december_rolls_into_next_year(self):
        assert calculate_plan_expires_from_interval("month", datetime(2025, 12, 15)) == datetime(2026, 1, 15)
        assert calculate_plan_expires_from_interval("month", datetime(2025, 12, 31)) == datetime(2026, 1, 31)

    def test_day_preserved_when_it_exists(self):
        assert calculate_plan_expires_from_interval("month", datetime(2025, 3, 14, 8, 0, 5)) == datetime(2025, 4, 14, 8, 0, 5)

    @pytest.mark.parametrize("year", [2023, 2024])
    def test_day_never_exceeds_month_length(self, year):
        day = datetime(year, 1, 1, 12)
        while day.year == year:
            result = calculate_plan_expires_from_interval("month", day)
            assert result.day <= calendar.monthrange(result.year, result.month)[1]
            assert (result.month - day.month) % 12 == 1
            day += timedelta(days=1)


class TestYearlyInterval:
    def test_same_day_next_year(self):
        assert calculate_plan_expires_from_interval("year", datetime(2025, 6, 1)) == datetime(2026, 6, 1)

    def test_leap_day_clamps_to_february_28(self):
        assert calculate_plan_expires_from_interval("year", datetime(2024, 2, 29)) == datetime(2025, 2, 28)


class TestOtherIntervals:
    def test_unknown_interval_adds_thirty_days(self):
        now = datetime(2025, 1, 20, 9, 0)
        assert calculate_plan_expires_from_interval("week", now) == now + timedelta(days=30)

    @pytest.mark.parametrize("interval", [None, ""])
    def test_missing_interval_returns_none(self, interval):
        assert calculate_plan_expires_from_interval(interval, datetime(2025, 1, 1)) is None

    def test_defaults_to_current_time(self):
        before = datetime.utcnow()
        result = calculate_plan_expires_from_interval("day")
        assert before + timedelta(days=30) <= result <= datetime.utcnow() + timedelta(days=30)
