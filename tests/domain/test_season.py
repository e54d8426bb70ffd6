"""
Tests for the season classifier and policy parsing.

Covers:
- Recurring policy with winter wrapping the year end
- Recurring policy with a contiguous winter (southern hemisphere)
- Manual ranges, inclusive bounds and reversed (wrapping) ranges
- Date coercion from strings and datetimes
- Malformed stored policies
"""

from datetime import date, datetime

import pytest

from fleet_kernel.domain.season import (
    ManualSeasonPolicy,
    RecurringSeasonPolicy,
    coerce_date,
    is_winter,
    parse_season_policy,
)

NORTHERN = RecurringSeasonPolicy(summer_month=4, summer_day=1, winter_month=11, winter_day=1)
SOUTHERN = RecurringSeasonPolicy(summer_month=10, summer_day=1, winter_month=4, winter_day=1)


class TestRecurringPolicy:
    """Month/day boundaries that repeat every year."""

    @pytest.mark.parametrize(
        "day, expected",
        [
            (date(2024, 1, 15), True),
            (date(2024, 3, 31), True),
            (date(2024, 4, 1), False),
            (date(2024, 7, 1), False),
            (date(2024, 10, 31), False),
            (date(2024, 11, 1), True),
            (date(2024, 12, 31), True),
        ],
    )
    def test_winter_wraps_year_end(self, day, expected):
        assert is_winter(day, NORTHERN) is expected

    @pytest.mark.parametrize(
        "day, expected",
        [
            (date(2024, 3, 31), False),
            (date(2024, 4, 1), True),
            (date(2024, 9, 30), True),
            (date(2024, 10, 1), False),
        ],
    )
    def test_contiguous_winter(self, day, expected):
        assert is_winter(day, SOUTHERN) is expected

    def test_feb_29_boundary_rolls_to_march_1_in_non_leap_year(self):
        policy = RecurringSeasonPolicy(summer_month=2, summer_day=29, winter_month=11, winter_day=1)
        assert is_winter(date(2023, 1, 10), policy) is True
        assert is_winter(date(2023, 2, 28), policy) is True
        assert is_winter(date(2023, 3, 1), policy) is False
        assert is_winter(date(2023, 11, 1), policy) is True
        # Leap year: the boundary exists as written
        assert is_winter(date(2024, 2, 28), policy) is True
        assert is_winter(date(2024, 2, 29), policy) is False

    def test_day_overflow_rolls_into_next_month(self):
        policy = RecurringSeasonPolicy(summer_month=4, summer_day=31, winter_month=11, winter_day=1)
        assert is_winter(date(2024, 4, 30), policy) is True
        assert is_winter(date(2024, 5, 1), policy) is False

    def test_month_out_of_range_is_summer(self):
        policy = RecurringSeasonPolicy(summer_month=13, summer_day=1, winter_month=11, winter_day=1)
        assert is_winter(date(2024, 12, 1), policy) is False


class TestManualPolicy:
    """Absolute calendar ranges."""

    def test_inclusive_bounds(self):
        policy = ManualSeasonPolicy(date(2023, 12, 1), date(2024, 2, 29))
        assert is_winter(date(2023, 12, 1), policy) is True
        assert is_winter(date(2024, 2, 29), policy) is True
        assert is_winter(date(2023, 11, 30), policy) is False
        assert is_winter(date(2024, 3, 1), policy) is False

    def test_reversed_range_wraps(self):
        policy = ManualSeasonPolicy(date(2024, 11, 15), date(2024, 3, 1))
        assert is_winter(date(2024, 12, 1), policy) is True
        assert is_winter(date(2024, 2, 1), policy) is True
        assert is_winter(date(2024, 3, 1), policy) is True
        assert is_winter(date(2024, 6, 1), policy) is False


class TestInputTolerance:
    """The classifier never raises."""

    def test_no_policy_is_summer(self):
        assert is_winter(date(2024, 1, 15), None) is False

    def test_unreadable_date_is_summer(self):
        assert is_winter("not-a-date", NORTHERN) is False
        assert is_winter("", NORTHERN) is False
        assert is_winter(None, NORTHERN) is False

    def test_iso_string_accepted(self):
        assert is_winter("2024-01-15", NORTHERN) is True

    def test_coerce_datetime_and_timestamp_string(self):
        assert coerce_date(datetime(2024, 6, 15, 10, 30)) == date(2024, 6, 15)
        assert coerce_date("2024-06-15T10:30:00") == date(2024, 6, 15)
        assert coerce_date(42) is None


class TestParseSeasonPolicy:
    """Stored mapping form."""

    def test_recurring_round_trip(self):
        assert parse_season_policy(NORTHERN.to_dict()) == NORTHERN

    def test_manual_round_trip(self):
        policy = ManualSeasonPolicy(date(2023, 12, 1), date(2024, 2, 29))
        assert parse_season_policy(policy.to_dict()) == policy

    @pytest.mark.parametrize(
        "data",
        [
            None,
            "recurring",
            {},
            {"type": "weekly"},
            {"type": "recurring", "summer_month": 4, "summer_day": 1, "winter_month": 11},
            {"type": "recurring", "summer_month": 13, "summer_day": 1, "winter_month": 11, "winter_day": 1},
            {"type": "recurring", "summer_month": 2, "summer_day": 30, "winter_month": 11, "winter_day": 1},
            {"type": "recurring", "summer_month": True, "summer_day": 1, "winter_month": 11, "winter_day": 1},
            {"type": "recurring", "summer_month": "4", "summer_day": 1, "winter_month": 11, "winter_day": 1},
            {"type": "manual", "winter_start": "2023-12-01"},
            {"type": "manual", "winter_start": "soon", "winter_end": "2024-02-29"},
        ],
    )
    def test_malformed_returns_none(self, data):
        assert parse_season_policy(data) is None

    def test_malformed_is_logged(self, captured_logs):
        parse_season_policy({"type": "weekly"})
        assert any(
            r["message"] == "season_policy_unknown_type" and r["policy_type"] == "weekly"
            for r in captured_logs()
        )
