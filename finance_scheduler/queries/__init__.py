"""Read-only schedule queries."""

from finance_scheduler.queries.upcoming import UpcomingQueryError, UpcomingTransactionsQuery

__all__ = ["UpcomingQueryError", "UpcomingTransactionsQuery"]
