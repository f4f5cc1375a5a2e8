"""
Frequency Calculator

Pure date arithmetic for recurrence rules. Nothing here reads the clock,
touches storage or keeps state: the same inputs always give the same date,
which is what makes a retried run safe.

Conventions:
- day_of_week uses 0 = Sunday ... 6 = Saturday
- a day_of_month beyond the target month's length is clamped to the
  month's last day (31 -> Apr 30, 29 -> Feb 28 in non-leap years)
"""

import calendar
from datetime import date, timedelta
from typing import Optional, Union

from finance_scheduler.models.schedule import (
    DailyRecurrence,
    DayOfMonthRecurrence,
    Frequency,
    MonthlyRecurrence,
    QuarterlyRecurrence,
    Recurrence,
    WeeklyRecurrence,
    YearlyRecurrence,
)


class RecurrenceError(ValueError):
    """Base exception for invalid recurrence rules."""
    pass


class InvalidFrequencyError(RecurrenceError):
    """Frequency is not one of the supported values."""

    def __init__(self, frequency: object):
        self.frequency = frequency
        allowed = ", ".join(f.value for f in Frequency)
        super().__init__(f"Invalid frequency: {frequency!r} (expected one of: {allowed})")


class MissingAnchorError(RecurrenceError):
    """The anchor field required by the frequency was not given."""

    def __init__(self, frequency: Frequency, anchor: str):
        self.frequency = frequency
        self.anchor = anchor
        super().__init__(f"{anchor} is required for {frequency.value} schedules")


class InvalidAnchorError(RecurrenceError):
    """The anchor field is outside its valid range."""

    def __init__(self, anchor: str, value: object, low: int, high: int):
        self.anchor = anchor
        self.value = value
        super().__init__(f"{anchor} must be between {low} and {high}, got {value!r}")


_DAY_OF_MONTH_CLASSES = {
    Frequency.MONTHLY: MonthlyRecurrence,
    Frequency.QUARTERLY: QuarterlyRecurrence,
    Frequency.YEARLY: YearlyRecurrence,
}


def parse_frequency(frequency: Union[str, Frequency]) -> Frequency:
    """Turn a raw frequency value into the enum, or fail with InvalidFrequencyError."""
    if isinstance(frequency, Frequency):
        return frequency
    try:
        return Frequency(str(frequency).strip().lower())
    except ValueError:
        raise InvalidFrequencyError(frequency) from None


def _check_range(anchor: str, value: object, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidAnchorError(anchor, value, low, high)
    return value


def build_recurrence(
    frequency: Union[str, Frequency],
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> Recurrence:
    """
    Build the recurrence variant for a frequency.

    Only the anchor the frequency needs is read; the other one is ignored.

    Raises:
        InvalidFrequencyError: unknown frequency
        MissingAnchorError: required anchor is None
        InvalidAnchorError: anchor out of range
    """
    freq = parse_frequency(frequency)

    if freq == Frequency.DAILY:
        return DailyRecurrence()

    if freq == Frequency.WEEKLY:
        if day_of_week is None:
            raise MissingAnchorError(freq, "day_of_week")
        return WeeklyRecurrence(day_of_week=_check_range("day_of_week", day_of_week, 0, 6))

    if day_of_month is None:
        raise MissingAnchorError(freq, "day_of_month")
    cls = _DAY_OF_MONTH_CLASSES[freq]
    return cls(day_of_month=_check_range("day_of_month", day_of_month, 1, 31))


# =============================================================================
# DATE HELPERS
# =============================================================================

def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamped_date(year: int, month: int, day_of_month: int) -> date:
    """The given day in the given month, clamped to the month's last day."""
    return date(year, month, min(day_of_month, days_in_month(year, month)))


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def sunday_based_weekday(value: date) -> int:
    """Weekday with 0 = Sunday (Python's weekday() has 0 = Monday)."""
    return (value.weekday() + 1) % 7


# =============================================================================
# OCCURRENCES
# =============================================================================

def _anchor_in_month(recurrence: DayOfMonthRecurrence, value: date) -> date:
    return clamped_date(value.year, value.month, recurrence.day_of_month)


def _anchor_months_later(recurrence: DayOfMonthRecurrence, value: date) -> date:
    year, month = shift_month(value.year, value.month, recurrence.months_step)
    return clamped_date(year, month, recurrence.day_of_month)


def next_occurrence(recurrence: Recurrence, reference_date: date) -> date:
    """
    The next occurrence strictly after reference_date.

    - daily: the following day
    - weekly: the next matching weekday, 1 to 7 days ahead
    - monthly/quarterly/yearly: this month's (clamped) anchor if it is
      still ahead of reference_date, otherwise the anchor 1/3/12 months later
    """
    if isinstance(recurrence, DailyRecurrence):
        return reference_date + timedelta(days=1)

    if isinstance(recurrence, WeeklyRecurrence):
        days_ahead = (recurrence.day_of_week - sunday_based_weekday(reference_date)) % 7
        return reference_date + timedelta(days=days_ahead or 7)

    if isinstance(recurrence, DayOfMonthRecurrence):
        candidate = _anchor_in_month(recurrence, reference_date)
        if candidate > reference_date:
            return candidate
        return _anchor_months_later(recurrence, reference_date)

    raise InvalidFrequencyError(getattr(recurrence, "frequency", recurrence))


def first_occurrence(recurrence: Recurrence, start_date: date) -> date:
    """
    The first occurrence on or after start_date.

    Used for a new schedule's first execution date and whenever the
    timing of a schedule is recomputed.
    """
    if isinstance(recurrence, DayOfMonthRecurrence):
        candidate = _anchor_in_month(recurrence, start_date)
        if candidate >= start_date:
            return candidate
        return _anchor_months_later(recurrence, start_date)

    return next_occurrence(recurrence, start_date - timedelta(days=1))


def occurrence_on_or_after(recurrence: Recurrence, cursor: date, target: date) -> date:
    """
    Step forward from an existing occurrence until reaching target.

    Stepping keeps the cadence of the schedule: a quarterly or yearly
    schedule stays in the months it was started in, which
    first_occurrence(recurrence, target) would not guarantee.
    """
    while cursor < target:
        cursor = next_occurrence(recurrence, cursor)
    return cursor


def compute_next_occurrence(
    frequency: Union[str, Frequency],
    reference_date: date,
    *,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """next_occurrence for raw (API-shaped) frequency and anchor values."""
    recurrence = build_recurrence(frequency, day_of_week, day_of_month)
    return next_occurrence(recurrence, reference_date)


def occurrences_between(
    recurrence: Recurrence,
    start: date,
    end: date,
    limit: int = 366,
) -> list[date]:
    """All occurrences in [start, end], capped at limit dates."""
    dates: list[date] = []
    current = first_occurrence(recurrence, start)
    while current <= end and len(dates) < limit:
        dates.append(current)
        current = next_occurrence(recurrence, current)
    return dates
