"""Tests for recurrence date arithmetic."""

import pytest
from datetime import date

from finance_scheduler.models.schedule import (
    DailyRecurrence,
    MonthlyRecurrence,
    QuarterlyRecurrence,
    WeeklyRecurrence,
    YearlyRecurrence,
)
from finance_scheduler.recurrence import (
    InvalidAnchorError,
    InvalidFrequencyError,
    MissingAnchorError,
    build_recurrence,
    clamped_date,
    compute_next_occurrence,
    first_occurrence,
    next_occurrence,
    occurrence_on_or_after,
    occurrences_between,
    parse_frequency,
    sunday_based_weekday,
)


class TestBuildRecurrence:
    """Tests for turning raw values into recurrence variants."""

    def test_parse_frequency_is_case_insensitive(self):
        assert parse_frequency(" Monthly ").value == "monthly"

    def test_unknown_frequency(self):
        with pytest.raises(InvalidFrequencyError):
            build_recurrence("fortnightly")

    def test_weekly_needs_day_of_week(self):
        with pytest.raises(MissingAnchorError) as exc:
            build_recurrence("weekly", day_of_month=3)
        assert exc.value.anchor == "day_of_week"

    def test_monthly_needs_day_of_month(self):
        with pytest.raises(MissingAnchorError):
            build_recurrence("quarterly", day_of_week=1)

    @pytest.mark.parametrize("frequency,kwargs", [
        ("weekly", {"day_of_week": 7}),
        ("weekly", {"day_of_week": -1}),
        ("monthly", {"day_of_month": 0}),
        ("yearly", {"day_of_month": 32}),
        ("monthly", {"day_of_month": True}),
    ])
    def test_anchor_out_of_range(self, frequency, kwargs):
        with pytest.raises(InvalidAnchorError):
            build_recurrence(frequency, **kwargs)

    def test_irrelevant_anchor_is_ignored(self):
        recurrence = build_recurrence("daily", day_of_week=3, day_of_month=12)
        assert recurrence == DailyRecurrence()

    def test_variants(self):
        assert isinstance(build_recurrence("quarterly", day_of_month=1), QuarterlyRecurrence)
        assert isinstance(build_recurrence("yearly", day_of_month=1), YearlyRecurrence)


class TestDateHelpers:

    def test_clamped_date(self):
        assert clamped_date(2024, 4, 31) == date(2024, 4, 30)
        assert clamped_date(2023, 2, 29) == date(2023, 2, 28)
        assert clamped_date(2024, 2, 31) == date(2024, 2, 29)
        assert clamped_date(2024, 1, 31) == date(2024, 1, 31)

    def test_sunday_based_weekday(self):
        assert sunday_based_weekday(date(2024, 1, 7)) == 0  # Sunday
        assert sunday_based_weekday(date(2024, 1, 8)) == 1  # Monday
        assert sunday_based_weekday(date(2024, 1, 13)) == 6  # Saturday


class TestNextOccurrence:
    """Tests for next_occurrence (always strictly after the reference)."""

    def test_daily(self):
        assert next_occurrence(DailyRecurrence(), date(2024, 12, 31)) == date(2025, 1, 1)

    def test_weekly_monday_from_wednesday(self):
        # 2024-01-10 is a Wednesday
        assert next_occurrence(WeeklyRecurrence(day_of_week=1), date(2024, 1, 10)) == date(2024, 1, 15)

    def test_weekly_same_weekday_moves_a_week(self):
        # 2024-01-15 is a Monday
        assert next_occurrence(WeeklyRecurrence(day_of_week=1), date(2024, 1, 15)) == date(2024, 1, 22)

    def test_weekly_sunday(self):
        assert next_occurrence(WeeklyRecurrence(day_of_week=0), date(2024, 1, 13)) == date(2024, 1, 14)

    def test_monthly_later_this_month(self):
        assert next_occurrence(MonthlyRecurrence(day_of_month=20), date(2024, 1, 10)) == date(2024, 1, 20)

    def test_monthly_on_anchor_moves_a_month(self):
        assert next_occurrence(MonthlyRecurrence(day_of_month=15), date(2024, 1, 15)) == date(2024, 2, 15)

    def test_monthly_31_clamps_to_short_months(self):
        recurrence = MonthlyRecurrence(day_of_month=31)
        assert next_occurrence(recurrence, date(2024, 1, 31)) == date(2024, 2, 29)
        assert next_occurrence(recurrence, date(2023, 1, 31)) == date(2023, 2, 28)
        assert next_occurrence(recurrence, date(2024, 3, 31)) == date(2024, 4, 30)

    def test_monthly_clamp_does_not_stick(self):
        recurrence = MonthlyRecurrence(day_of_month=31)
        assert next_occurrence(recurrence, date(2024, 2, 29)) == date(2024, 3, 31)

    def test_monthly_year_rollover(self):
        assert next_occurrence(MonthlyRecurrence(day_of_month=5), date(2024, 12, 5)) == date(2025, 1, 5)

    def test_quarterly(self):
        recurrence = QuarterlyRecurrence(day_of_month=31)
        assert next_occurrence(recurrence, date(2024, 1, 31)) == date(2024, 4, 30)
        assert next_occurrence(recurrence, date(2024, 11, 30)) == date(2025, 2, 28)

    def test_yearly_leap_day(self):
        recurrence = YearlyRecurrence(day_of_month=29)
        assert next_occurrence(recurrence, date(2024, 2, 29)) == date(2025, 2, 28)

    @pytest.mark.parametrize("recurrence", [
        DailyRecurrence(),
        WeeklyRecurrence(day_of_week=3),
        MonthlyRecurrence(day_of_month=31),
        QuarterlyRecurrence(day_of_month=15),
        YearlyRecurrence(day_of_month=1),
    ])
    def test_always_strictly_after(self, recurrence):
        reference = date(2024, 1, 1)
        for _ in range(40):
            following = next_occurrence(recurrence, reference)
            assert following > reference
            assert next_occurrence(recurrence, reference) == following
            reference = following

    def test_compute_next_occurrence_with_raw_values(self):
        assert compute_next_occurrence("weekly", date(2024, 1, 10), day_of_week=1) == date(2024, 1, 15)
        with pytest.raises(MissingAnchorError):
            compute_next_occurrence("monthly", date(2024, 1, 10))


class TestFirstOccurrence:
    """Tests for first_occurrence (on or after the start)."""

    def test_start_on_anchor(self):
        assert first_occurrence(MonthlyRecurrence(day_of_month=15), date(2024, 1, 15)) == date(2024, 1, 15)
        assert first_occurrence(WeeklyRecurrence(day_of_week=1), date(2024, 1, 15)) == date(2024, 1, 15)
        assert first_occurrence(DailyRecurrence(), date(2024, 1, 15)) == date(2024, 1, 15)

    def test_start_after_anchor(self):
        assert first_occurrence(MonthlyRecurrence(day_of_month=10), date(2024, 1, 15)) == date(2024, 2, 10)

    def test_start_on_clamped_anchor(self):
        assert first_occurrence(MonthlyRecurrence(day_of_month=31), date(2024, 4, 30)) == date(2024, 4, 30)


class TestOccurrenceOnOrAfter:
    """Tests for stepping an existing occurrence forward."""

    def test_yearly_keeps_its_month(self):
        yearly = YearlyRecurrence(day_of_month=15)
        assert occurrence_on_or_after(yearly, date(2025, 3, 15), date(2025, 7, 1)) == date(2026, 3, 15)

    def test_quarterly_keeps_its_cadence(self):
        quarterly = QuarterlyRecurrence(day_of_month=15)
        assert occurrence_on_or_after(quarterly, date(2024, 4, 15), date(2024, 5, 1)) == date(2024, 7, 15)

    def test_cursor_already_on_or_after_target(self):
        monthly = MonthlyRecurrence(day_of_month=15)
        assert occurrence_on_or_after(monthly, date(2024, 1, 15), date(2024, 1, 15)) == date(2024, 1, 15)
        assert occurrence_on_or_after(monthly, date(2024, 2, 15), date(2024, 1, 20)) == date(2024, 2, 15)


class TestOccurrencesBetween:

    def test_weekly_mondays_in_january(self):
        dates = occurrences_between(WeeklyRecurrence(day_of_week=1), date(2024, 1, 1), date(2024, 1, 31))
        assert dates == [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 15),
            date(2024, 1, 22),
            date(2024, 1, 29),
        ]

    def test_limit(self):
        dates = occurrences_between(DailyRecurrence(), date(2024, 1, 1), date(2024, 12, 31), limit=3)
        assert len(dates) == 3

    def test_empty_range(self):
        assert occurrences_between(MonthlyRecurrence(day_of_month=20), date(2024, 1, 1), date(2024, 1, 10)) == []
