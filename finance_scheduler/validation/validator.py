"""
Two-Stage Schedule Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - RECURRENCE SHAPE:
- Frequency is one of the supported values
- The anchor the frequency needs is present and in range
- Failures raise immediately (InvalidFrequencyError, MissingAnchorError,
  InvalidAnchorError)

STAGE 2 - DATE SEMANTICS:
- End date is not before start date
- At least one occurrence fits between start and end
- Failures raise InvalidDateRangeError

Anything that is allowed but worth telling the user about (a clamped
day of month, an ignored anchor, a first run in the past) is reported
as a ValidationIssue instead.

IMPORTANT: Validation runs synchronously in create/update. An invalid
definition never reaches storage, so the engine never sees one.
"""

from datetime import date
from typing import Optional, Union

from finance_scheduler.models.schedule import (
    DayOfMonthRecurrence,
    Frequency,
    ScheduleDefinition,
    ValidationIssue,
    ValidationResult,
    WeeklyRecurrence,
)
from finance_scheduler.recurrence import build_recurrence, first_occurrence


class InvalidDateRangeError(ValueError):
    """The schedule's date range is empty or inverted."""

    def __init__(self, message: str, start_date: date, end_date: Optional[date]):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(message)


_WEEKDAY_NAMES = [
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
]


class ScheduleValidator:
    """
    Validates schedule timing through a two-stage pipeline.

    Stage 1: Recurrence shape (raises RecurrenceError subclasses)
    Stage 2: Date semantics (raises InvalidDateRangeError)
    """

    def _anchor_issues(
        self,
        frequency: Frequency,
        day_of_week: Optional[int],
        day_of_month: Optional[int],
    ) -> list[ValidationIssue]:
        issues = []

        if day_of_week is not None and frequency != Frequency.WEEKLY:
            issues.append(ValidationIssue(
                field="day_of_week",
                issue_type="ignored_anchor",
                message=f"day_of_week is ignored for {frequency.value} schedules",
                severity="info",
            ))

        if day_of_month is not None and frequency in (Frequency.DAILY, Frequency.WEEKLY):
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="ignored_anchor",
                message=f"day_of_month is ignored for {frequency.value} schedules",
                severity="info",
            ))

        return issues

    def _validate_dates(
        self,
        recurrence,
        start_date: date,
        end_date: Optional[date],
    ) -> date:
        """
        Stage 2: date semantics.

        Returns the first execution date.
        """
        if end_date is not None and end_date < start_date:
            raise InvalidDateRangeError(
                f"End date ({end_date}) cannot be before start date ({start_date})",
                start_date,
                end_date,
            )

        first = first_occurrence(recurrence, start_date)
        if end_date is not None and first > end_date:
            raise InvalidDateRangeError(
                f"No occurrence falls between {start_date} and {end_date} "
                f"(the first one would be {first})",
                start_date,
                end_date,
            )
        return first

    def validate_timing(
        self,
        frequency: Union[str, Frequency],
        start_date: date,
        end_date: Optional[date] = None,
        day_of_week: Optional[int] = None,
        day_of_month: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run both stages on raw timing fields.

        Args:
            frequency: Raw frequency value
            start_date: First day the schedule may run
            end_date: Last day the schedule may run, if any
            day_of_week: Weekly anchor (0 = Sunday)
            day_of_month: Monthly/quarterly/yearly anchor
            as_of: Today's date, for the past-start notice

        Returns:
            ValidationResult with the parsed recurrence and first date
        """
        # Stage 1
        recurrence = build_recurrence(frequency, day_of_week, day_of_month)
        freq = Frequency(recurrence.frequency)
        issues = self._anchor_issues(freq, day_of_week, day_of_month)

        if isinstance(recurrence, DayOfMonthRecurrence) and recurrence.day_of_month > 28:
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="clamped_day",
                message=(
                    f"Day {recurrence.day_of_month} does not exist in every month; "
                    "shorter months use their last day"
                ),
                severity="warning",
            ))

        # Stage 2
        first = self._validate_dates(recurrence, start_date, end_date)

        if as_of is not None and first < as_of:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="past_start",
                message=f"First execution date ({first}) is in the past; it will be due on the next run",
                severity="warning",
            ))
        elif first != start_date:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="shifted_start",
                message=f"First execution will be on {first}",
                severity="info",
            ))

        return ValidationResult(
            recurrence=recurrence,
            first_execution_date=first,
            issues=issues,
        )

    def validate_definition(
        self,
        definition: ScheduleDefinition,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """Validate a create payload."""
        return self.validate_timing(
            frequency=definition.frequency,
            start_date=definition.start_date,
            end_date=definition.end_date,
            day_of_week=definition.day_of_week,
            day_of_month=definition.day_of_month,
            as_of=as_of,
        )

    def describe(self, result: ValidationResult) -> str:
        """Plain-language description of a recurrence, e.g. 'Every Monday'."""
        recurrence = result.recurrence
        if isinstance(recurrence, WeeklyRecurrence):
            return f"Every {_WEEKDAY_NAMES[recurrence.day_of_week]}"
        if isinstance(recurrence, DayOfMonthRecurrence):
            every = {
                "monthly": "Every month",
                "quarterly": "Every 3 months",
                "yearly": "Every year",
            }[recurrence.frequency]
            return f"{every} on day {recurrence.day_of_month}"
        return "Every day"

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        lines = [
            f"✅ {self.describe(result)}, starting {result.first_execution_date.isoformat()}"
        ]

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
