"""Tests for the upcoming-transactions query."""

import pytest
from datetime import date

from finance_scheduler.models.schedule import ScheduleStatus
from finance_scheduler.queries import UpcomingQueryError, UpcomingTransactionsQuery

from conftest import make_schedule, run_async


NOW = date(2024, 1, 10)


@pytest.fixture
def query(schedule_storage):
    return UpcomingTransactionsQuery(schedule_storage)


def seed(storage, *schedules):
    for schedule in schedules:
        run_async(storage.save_schedule(schedule))


def ids(schedules):
    return [s.id for s in schedules]


class TestGetUpcoming:

    def test_window_is_inclusive(self, query, schedule_storage):
        today = make_schedule(next_execution_date=date(2024, 1, 10))
        edge = make_schedule(next_execution_date=date(2024, 1, 13))
        beyond = make_schedule(next_execution_date=date(2024, 1, 14))
        seed(schedule_storage, today, edge, beyond)

        result = run_async(query.get_upcoming(horizon_days=3, now=NOW))

        assert ids(result.upcoming_transactions) == [today.id, edge.id]
        assert result.generated_for == NOW
        assert result.horizon_days == 3

    def test_overdue_is_not_upcoming(self, query, schedule_storage):
        seed(schedule_storage, make_schedule(next_execution_date=date(2024, 1, 9)))
        result = run_async(query.get_upcoming(horizon_days=3, now=NOW))
        assert result.upcoming_transactions == []

    def test_only_active_schedules(self, query, schedule_storage):
        seed(
            schedule_storage,
            make_schedule(next_execution_date=NOW, status=ScheduleStatus.PAUSED),
            make_schedule(next_execution_date=NOW, status=ScheduleStatus.CANCELLED),
        )
        result = run_async(query.get_upcoming(horizon_days=3, now=NOW))
        assert result.upcoming_transactions == []

    def test_blocked_listed_separately(self, query, schedule_storage):
        blocked = make_schedule(
            next_execution_date=date(2024, 1, 5),
            insufficient_funds=True,
            insufficient_funds_since=date(2024, 1, 5),
        )
        blocked_in_window = make_schedule(
            next_execution_date=NOW,
            insufficient_funds=True,
            insufficient_funds_since=NOW,
        )
        fine = make_schedule(next_execution_date=NOW)
        seed(schedule_storage, blocked, blocked_in_window, fine)

        result = run_async(query.get_upcoming(horizon_days=3, now=NOW))

        assert ids(result.upcoming_transactions) == [fine.id]
        assert ids(result.insufficient_funds_transactions) == [blocked.id, blocked_in_window.id]

    def test_blocked_paused_is_not_listed(self, query, schedule_storage):
        seed(schedule_storage, make_schedule(
            status=ScheduleStatus.PAUSED,
            insufficient_funds=True,
            insufficient_funds_since=NOW,
        ))
        result = run_async(query.get_upcoming(horizon_days=3, now=NOW))
        assert result.insufficient_funds_transactions == []

    def test_zero_horizon(self, query, schedule_storage):
        today = make_schedule(next_execution_date=NOW)
        seed(schedule_storage, today, make_schedule(next_execution_date=date(2024, 1, 11)))
        result = run_async(query.get_upcoming(horizon_days=0, now=NOW))
        assert ids(result.upcoming_transactions) == [today.id]

    def test_default_horizon_from_settings(self, query, schedule_storage, monkeypatch):
        monkeypatch.setenv("SCHEDULER_UPCOMING_HORIZON_DAYS", "7")
        seed(schedule_storage, make_schedule(next_execution_date=date(2024, 1, 17)))
        result = run_async(query.get_upcoming(now=NOW))
        assert result.horizon_days == 7
        assert len(result.upcoming_transactions) == 1

    def test_negative_horizon(self, query):
        with pytest.raises(UpcomingQueryError):
            run_async(query.get_upcoming(horizon_days=-1, now=NOW))


class TestPendingConfirmation:

    def test_due_manual_schedules_only(self, query, schedule_storage):
        manual = make_schedule(auto_execute=False, next_execution_date=date(2024, 1, 8))
        later = make_schedule(auto_execute=False, next_execution_date=date(2024, 1, 20))
        automatic = make_schedule(next_execution_date=date(2024, 1, 8))
        seed(schedule_storage, manual, later, automatic)

        pending = run_async(query.get_pending_confirmation(NOW))

        assert ids(pending) == [manual.id]
