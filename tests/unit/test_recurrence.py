"""
Unit tests for recurrence date calculation.

The calculator is pure, so these tests need no repositories at all.
Reference dates: 2024-01-01 is a Monday; 2024 is a leap year.
"""

from datetime import datetime

import pytest

from coachhub.core.scheduling import (
    RecurrenceCalculator,
    RecurrencePattern,
    RecurrenceRule,
    describe_rule,
)
from coachhub.core.scheduling.recurrence import weekday_index

MONDAY = datetime(2024, 1, 1, 9, 0)


@pytest.fixture
def calculator() -> RecurrenceCalculator:
    return RecurrenceCalculator()


# ---------------------------------------------------------------------------
# Weekday convention
# ---------------------------------------------------------------------------

class TestWeekdayIndex:

    def test_sunday_is_zero(self):
        assert weekday_index(datetime(2024, 1, 7)) == 0

    def test_monday_is_one_and_saturday_is_six(self):
        assert weekday_index(datetime(2024, 1, 1)) == 1
        assert weekday_index(datetime(2024, 1, 6)) == 6


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class TestWeekly:

    def test_selected_weekdays(self, calculator):
        """Mon/Wed/Fri starting on a Monday, six occurrences."""
        rule = RecurrenceRule(pattern=RecurrencePattern.WEEKLY, days_of_week=(1, 3, 5))

        result = calculator.calculate(rule, MONDAY, max_occurrences=6)

        assert [d.day for d in result.dates] == [1, 3, 5, 8, 10, 12]
        assert not result.truncated

    def test_defaults_to_start_weekday(self, calculator):
        """Without days_of_week the start's own weekday is used."""
        tuesday = datetime(2024, 1, 2, 18, 30)
        rule = RecurrenceRule(pattern="weekly")

        result = calculator.calculate(rule, tuesday, max_occurrences=3)

        assert result.dates == (
            datetime(2024, 1, 2, 18, 30),
            datetime(2024, 1, 9, 18, 30),
            datetime(2024, 1, 16, 18, 30),
        )

    def test_time_of_day_is_kept(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.WEEKLY, days_of_week=(1,))

        result = calculator.calculate(rule, MONDAY, max_occurrences=2)

        assert all(d.hour == 9 and d.minute == 0 for d in result.dates)

    def test_end_date_is_inclusive(self, calculator):
        rule = RecurrenceRule(
            pattern=RecurrencePattern.WEEKLY,
            days_of_week=(1,),
            end_date=datetime(2024, 1, 15, 9, 0),
        )

        result = calculator.calculate(rule, MONDAY)

        assert [d.day for d in result.dates] == [1, 8, 15]
        assert not result.truncated


class TestBiWeekly:

    def test_every_other_week(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.BI_WEEKLY, days_of_week=(1,))

        result = calculator.calculate(rule, MONDAY, max_occurrences=3)

        assert result.dates == (
            datetime(2024, 1, 1, 9, 0),
            datetime(2024, 1, 15, 9, 0),
            datetime(2024, 1, 29, 9, 0),
        )

    def test_interval_counts_two_week_units(self, calculator):
        """interval=2 on a bi-weekly rule means every fourth week."""
        rule = RecurrenceRule(pattern=RecurrencePattern.BI_WEEKLY, interval=2, days_of_week=(1,))

        result = calculator.calculate(rule, MONDAY, max_occurrences=2)

        assert result.dates == (datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 29, 9, 0))


class TestMonthly:

    def test_day_of_month(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.MONTHLY, day_of_month=15)

        result = calculator.calculate(rule, MONDAY, max_occurrences=3)

        assert result.dates == (
            datetime(2024, 1, 15, 9, 0),
            datetime(2024, 2, 15, 9, 0),
            datetime(2024, 3, 15, 9, 0),
        )

    def test_defaults_to_start_day(self, calculator):
        start = datetime(2024, 1, 10, 12, 0)
        rule = RecurrenceRule(pattern=RecurrencePattern.MONTHLY)

        result = calculator.calculate(rule, start, max_occurrences=2)

        assert result.dates == (datetime(2024, 1, 10, 12, 0), datetime(2024, 2, 10, 12, 0))

    def test_interval_skips_months(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.MONTHLY, interval=2, day_of_month=10)

        result = calculator.calculate(rule, datetime(2024, 1, 10), max_occurrences=3)

        assert [d.month for d in result.dates] == [1, 3, 5]

    def test_months_without_the_target_day_are_skipped(self, calculator):
        """Day 31 lands in Jan, Mar and May; Feb and Apr don't have one."""
        rule = RecurrenceRule(pattern=RecurrencePattern.MONTHLY, day_of_month=31)

        result = calculator.calculate(rule, datetime(2024, 1, 31), max_occurrences=3)

        assert result.dates == (
            datetime(2024, 1, 31),
            datetime(2024, 3, 31),
            datetime(2024, 5, 31),
        )


class TestQuarterly:

    def test_matches_last_month_of_each_quarter(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.QUARTERLY, day_of_month=1)

        result = calculator.calculate(rule, MONDAY, max_occurrences=2)

        assert result.dates == (datetime(2024, 3, 1, 9, 0), datetime(2024, 6, 1, 9, 0))


class TestCustom:

    def test_every_n_weeks(self, calculator):
        rule = RecurrenceRule(pattern=RecurrencePattern.CUSTOM, interval=3)

        result = calculator.calculate(rule, MONDAY, max_occurrences=3)

        assert result.dates == (
            datetime(2024, 1, 1, 9, 0),
            datetime(2024, 1, 22, 9, 0),
            datetime(2024, 2, 12, 9, 0),
        )


# ---------------------------------------------------------------------------
# Bounds and edge cases
# ---------------------------------------------------------------------------

class TestBounds:

    def test_caller_max_tightens_rule_max(self, calculator):
        rule = RecurrenceRule(pattern="weekly", days_of_week=(1,), max_occurrences=10)

        assert calculator.calculate(rule, MONDAY, max_occurrences=2).count == 2

    def test_caller_max_cannot_loosen_rule_max(self, calculator):
        rule = RecurrenceRule(pattern="weekly", days_of_week=(1,), max_occurrences=2)

        assert calculator.calculate(rule, MONDAY, max_occurrences=10).count == 2

    def test_earlier_end_date_wins(self, calculator):
        rule = RecurrenceRule(
            pattern="weekly",
            days_of_week=(1,),
            end_date=datetime(2024, 1, 31),
        )

        early = calculator.calculate(rule, MONDAY, end_date=datetime(2024, 1, 10))
        late = calculator.calculate(rule, MONDAY, end_date=datetime(2024, 12, 31))

        assert [d.day for d in early.dates] == [1, 8]
        assert [d.day for d in late.dates] == [1, 8, 15, 22, 29]

    def test_end_before_start_yields_nothing(self, calculator):
        rule = RecurrenceRule(pattern="weekly", days_of_week=(1,))

        result = calculator.calculate(rule, MONDAY, end_date=datetime(2023, 12, 1))

        assert result.dates == ()
        assert not result.truncated

    def test_unknown_pattern_yields_empty_result(self, calculator):
        rule = RecurrenceRule(pattern="yearly")

        result = calculator.calculate(rule, MONDAY, max_occurrences=5)

        assert rule.pattern == "yearly"
        assert result.dates == ()
        assert not result.truncated

    def test_unbounded_series_stops_at_scan_cap(self, calculator):
        """365 daily steps from 2024-01-01 cover 53 Mondays."""
        rule = RecurrenceRule(pattern="weekly", days_of_week=(1,))

        result = calculator.calculate(rule, MONDAY)

        assert result.count == 53
        assert result.truncated

    def test_small_scan_cap_truncates_bounded_series(self):
        calculator = RecurrenceCalculator(max_scan_steps=10)
        rule = RecurrenceRule(pattern="weekly", days_of_week=(1,), max_occurrences=5)

        result = calculator.calculate(rule, MONDAY)

        assert [d.day for d in result.dates] == [1, 8]
        assert result.truncated

    def test_scan_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            RecurrenceCalculator(max_scan_steps=0)


class TestProperties:
    """Invariants that hold for every pattern."""

    @pytest.mark.parametrize("rule", [
        RecurrenceRule(pattern=RecurrencePattern.WEEKLY, days_of_week=(0, 2, 4)),
        RecurrenceRule(pattern=RecurrencePattern.BI_WEEKLY, days_of_week=(1, 5)),
        RecurrenceRule(pattern=RecurrencePattern.MONTHLY, day_of_month=28),
        RecurrenceRule(pattern=RecurrencePattern.QUARTERLY, day_of_month=15),
        RecurrenceRule(pattern=RecurrencePattern.CUSTOM, interval=2),
    ])
    def test_dates_are_increasing_bounded_and_deterministic(self, calculator, rule):
        first = calculator.calculate(rule, MONDAY, max_occurrences=6)
        second = calculator.calculate(rule, MONDAY, max_occurrences=6)

        assert first == second
        assert first.count <= 6
        assert all(d >= MONDAY for d in first.dates)
        assert list(first.dates) == sorted(set(first.dates))


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------

class TestDescribeRule:

    def test_weekly_with_days(self):
        rule = RecurrenceRule(pattern="weekly", days_of_week=(3, 1))
        assert describe_rule(rule) == "Every week on Monday, Wednesday"

    def test_bi_weekly_interval(self):
        rule = RecurrenceRule(pattern="bi-weekly", interval=2)
        assert describe_rule(rule) == "Every 4 weeks"

    def test_monthly_with_bounds(self):
        rule = RecurrenceRule(
            pattern="monthly",
            day_of_month=15,
            end_date=datetime(2024, 6, 30),
            max_occurrences=4,
        )
        assert describe_rule(rule) == "Every month on day 15 until 2024-06-30, 4 occurrences at most"

    def test_unknown_pattern(self):
        assert describe_rule(RecurrenceRule(pattern="yearly")) == "Unknown recurrence pattern"
