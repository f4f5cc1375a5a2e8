"""
Upcoming-Transactions Query

DESIGN DECISION: This is a read-only view. It never executes, advances
or flags anything; it only reports what storage already says.

Two lists feed the dashboard:
- upcoming: active, not blocked, due within the horizon
- insufficient funds: active and blocked, whatever their date

A blocked schedule appears only in the second list.
"""

from datetime import date, timedelta
from typing import Optional

from finance_scheduler.config import get_settings
from finance_scheduler.models.schedule import (
    ScheduledTransaction,
    ScheduleStatus,
    UpcomingTransactions,
)
from finance_scheduler.services.storage import ScheduleStorageInterface
from finance_scheduler.services.storage.interface import schedule_sort_key


# Upper bound for a single dashboard read
_MAX_ROWS = 10000


class UpcomingQueryError(ValueError):
    """Invalid query arguments."""
    pass


class UpcomingTransactionsQuery:
    """
    Answers "what is about to happen, and what is stuck?".
    """

    def __init__(self, storage: ScheduleStorageInterface):
        self._storage = storage

    async def get_upcoming(
        self,
        horizon_days: Optional[int] = None,
        now: Optional[date] = None,
    ) -> UpcomingTransactions:
        """
        Schedules due in [now, now + horizon_days], plus blocked ones.

        Args:
            horizon_days: Look-ahead window (defaults to the configured horizon)
            now: Reference date (defaults to today)
        """
        if horizon_days is None:
            horizon_days = get_settings().scheduler.upcoming_horizon_days
        if horizon_days < 0:
            raise UpcomingQueryError(f"horizon_days must not be negative, got {horizon_days}")
        now = now or date.today()

        upcoming = await self._storage.list_schedules(
            status=ScheduleStatus.ACTIVE,
            insufficient_funds=False,
            next_from=now,
            next_to=now + timedelta(days=horizon_days),
            limit=_MAX_ROWS,
        )
        blocked = await self._storage.list_schedules(
            status=ScheduleStatus.ACTIVE,
            insufficient_funds=True,
            limit=_MAX_ROWS,
        )

        return UpcomingTransactions(
            generated_for=now,
            horizon_days=horizon_days,
            upcoming_transactions=sorted(upcoming, key=schedule_sort_key),
            insufficient_funds_transactions=sorted(blocked, key=schedule_sort_key),
        )

    async def get_pending_confirmation(
        self,
        as_of: Optional[date] = None,
    ) -> list[ScheduledTransaction]:
        """Manual schedules that are due and wait for the user to confirm them."""
        as_of = as_of or date.today()
        due = await self._storage.list_due(as_of, limit=_MAX_ROWS)
        return [s for s in due if not s.auto_execute]
