"""Recurrence rules and date arithmetic."""

from finance_scheduler.recurrence.frequency import (
    InvalidAnchorError,
    InvalidFrequencyError,
    MissingAnchorError,
    RecurrenceError,
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

__all__ = [
    "InvalidAnchorError",
    "InvalidFrequencyError",
    "MissingAnchorError",
    "RecurrenceError",
    "build_recurrence",
    "clamped_date",
    "compute_next_occurrence",
    "first_occurrence",
    "next_occurrence",
    "occurrence_on_or_after",
    "occurrences_between",
    "parse_frequency",
    "sunday_based_weekday",
]
