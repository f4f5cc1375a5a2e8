"""Schedule validation package."""

from finance_scheduler.validation.validator import InvalidDateRangeError, ScheduleValidator

__all__ = ["InvalidDateRangeError", "ScheduleValidator"]
