"""
Tests for the ScheduleService flows.

These go through the public API only: create → run → inspect, and the
user-driven lifecycle around it.
"""

import pytest
from datetime import date
from decimal import Decimal

from finance_scheduler.engine import InvalidStatusTransitionError, ScheduleNotActiveError
from finance_scheduler.models.audit import AuditEventType
from finance_scheduler.models.schedule import (
    Frequency,
    QuarterlyRecurrence,
    ScheduleFilters,
    ScheduleStatus,
    ScheduleUpdate,
    YearlyRecurrence,
)
from finance_scheduler.orchestrator import ScheduleService, create_app_components
from finance_scheduler.recurrence import InvalidFrequencyError, MissingAnchorError
from finance_scheduler.services.storage import NotFoundError
from finance_scheduler.validation import InvalidDateRangeError

from conftest import make_definition, make_schedule, run_async


AS_OF = date(2024, 1, 1)


def create(service, **overrides):
    return run_async(service.create(make_definition(**overrides), as_of=AS_OF))


def seed(storage, schedule):
    run_async(storage.save_schedule(schedule))
    return schedule


def event_types(audit_storage, schedule_id):
    events = run_async(audit_storage.get_events_by_entity("schedule", schedule_id))
    return [e.event_type for e in events]


class TestCreate:

    def test_creates_active_schedule(self, service, schedule_storage, audit_storage):
        schedule = create(service)

        assert schedule.status == ScheduleStatus.ACTIVE
        assert schedule.next_execution_date == date(2024, 1, 15)
        assert schedule.last_execution_date is None
        assert run_async(service.get(schedule.id)) == schedule
        assert event_types(audit_storage, schedule.id) == [AuditEventType.SCHEDULE_CREATED]

    def test_weekly_first_occurrence(self, service):
        # 2024-01-03 is a Wednesday
        schedule = create(
            service,
            frequency="weekly",
            day_of_week=1,
            day_of_month=None,
            start_date=date(2024, 1, 3),
        )
        assert schedule.next_execution_date == date(2024, 1, 8)

    def test_invalid_frequency_stores_nothing(self, service, schedule_storage):
        with pytest.raises(InvalidFrequencyError):
            create(service, frequency="biweekly")
        assert run_async(schedule_storage.count_schedules()) == 0

    def test_missing_anchor(self, service):
        with pytest.raises(MissingAnchorError):
            create(service, frequency="yearly", day_of_month=None)

    def test_empty_date_range(self, service):
        with pytest.raises(InvalidDateRangeError):
            create(service, start_date=date(2024, 1, 1), end_date=date(2024, 1, 10))

    def test_preview_does_not_store(self, service, schedule_storage):
        result = service.preview(make_definition(day_of_month=31), as_of=AS_OF)
        assert result.first_execution_date == date(2024, 1, 31)
        assert run_async(schedule_storage.count_schedules()) == 0


class TestUpdate:

    def test_amount_change_lifts_block(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            insufficient_funds=True,
            insufficient_funds_since=date(2024, 1, 15),
        ))

        updated = run_async(service.update(schedule.id, ScheduleUpdate(amount=Decimal("10.00"))))

        assert updated.amount == Decimal("10.00")
        assert not updated.insufficient_funds
        assert updated.insufficient_funds_since is None

    def test_description_change_keeps_block(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            insufficient_funds=True,
            insufficient_funds_since=date(2024, 1, 15),
        ))
        updated = run_async(service.update(schedule.id, ScheduleUpdate(description="Climbing gym")))
        assert updated.insufficient_funds
        assert updated.next_execution_date == date(2024, 1, 15)

    def test_timing_change_recomputes_after_last_execution(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            last_execution_date=date(2024, 1, 15),
            next_execution_date=date(2024, 2, 15),
        ))

        updated = run_async(service.update(schedule.id, ScheduleUpdate(day_of_month=20)))

        assert updated.day_of_month == 20
        assert updated.next_execution_date == date(2024, 1, 20)

    def test_frequency_change(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        updated = run_async(service.update(
            schedule.id,
            ScheduleUpdate(frequency="weekly", day_of_week=5),
        ))
        assert updated.frequency == Frequency.WEEKLY
        # 2024-01-05 is the first Friday on or after the start
        assert updated.next_execution_date == date(2024, 1, 5)

    def test_invalid_timing_is_rejected(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        with pytest.raises(MissingAnchorError):
            run_async(service.update(schedule.id, ScheduleUpdate(frequency="weekly")))
        assert run_async(service.get(schedule.id)) == schedule

    def test_end_date_before_next_completes(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            last_execution_date=date(2024, 1, 15),
            next_execution_date=date(2024, 2, 15),
        ))
        updated = run_async(service.update(schedule.id, ScheduleUpdate(end_date=date(2024, 2, 1))))
        assert updated.status == ScheduleStatus.COMPLETED

    def test_end_date_can_be_removed(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(end_date=date(2024, 6, 30)))
        updated = run_async(service.update(schedule.id, ScheduleUpdate(end_date=None)))
        assert updated.end_date is None

    def test_completed_cannot_be_requested(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        with pytest.raises(InvalidStatusTransitionError):
            run_async(service.update(schedule.id, ScheduleUpdate(status=ScheduleStatus.COMPLETED)))

    def test_terminal_schedule_is_read_only(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(status=ScheduleStatus.CANCELLED))
        with pytest.raises(ScheduleNotActiveError):
            run_async(service.update(schedule.id, ScheduleUpdate(amount=Decimal("1.00"))))

    def test_resume_through_update_skips_missed(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(status=ScheduleStatus.PAUSED))
        updated = run_async(service.update(
            schedule.id,
            ScheduleUpdate(status=ScheduleStatus.ACTIVE),
            as_of=date(2024, 3, 20),
        ))
        assert updated.status == ScheduleStatus.ACTIVE
        assert updated.next_execution_date == date(2024, 4, 15)

    def test_resume_through_update_keeps_quarterly_cadence(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            recurrence=QuarterlyRecurrence(day_of_month=15),
            start_date=date(2024, 1, 15),
            last_execution_date=date(2024, 1, 15),
            next_execution_date=date(2024, 4, 15),
            status=ScheduleStatus.PAUSED,
        ))
        updated = run_async(service.update(
            schedule.id,
            ScheduleUpdate(status=ScheduleStatus.ACTIVE),
            as_of=date(2024, 5, 1),
        ))
        assert updated.next_execution_date == date(2024, 7, 15)

    def test_frequency_change_counts_quarters_from_start(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            last_execution_date=date(2024, 2, 15),
            next_execution_date=date(2024, 3, 15),
        ))
        updated = run_async(service.update(schedule.id, ScheduleUpdate(frequency="quarterly")))
        # Quarters run Jan/Apr/Jul/Oct from the January start
        assert updated.next_execution_date == date(2024, 4, 15)

    def test_missing_schedule(self, service):
        with pytest.raises(NotFoundError):
            run_async(service.update(make_schedule().id, ScheduleUpdate(amount=Decimal("1.00"))))

    def test_update_is_audited(self, service, schedule_storage, audit_storage):
        schedule = seed(schedule_storage, make_schedule())
        run_async(service.update(schedule.id, ScheduleUpdate(payee="City Gym")))

        events = run_async(audit_storage.get_events_by_entity("schedule", schedule.id))
        assert events[-1].event_type == AuditEventType.SCHEDULE_UPDATED
        assert events[-1].details["changed_fields"] == ["payee"]


class TestDelete:

    def test_delete_keeps_transactions(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        run_async(service.run_due_schedules(as_of=date(2024, 1, 15)))

        run_async(service.delete(schedule.id))

        with pytest.raises(NotFoundError):
            run_async(service.get(schedule.id))
        assert len(run_async(service.list_transactions(schedule.id))) == 1

    def test_delete_missing(self, service):
        with pytest.raises(NotFoundError):
            run_async(service.delete(make_schedule().id))


class TestLifecycle:

    def test_pause_and_resume(self, service, schedule_storage, audit_storage):
        schedule = seed(schedule_storage, make_schedule())

        paused = run_async(service.pause(schedule.id))
        assert paused.status == ScheduleStatus.PAUSED

        resumed = run_async(service.resume(schedule.id, as_of=date(2024, 1, 10)))
        assert resumed.status == ScheduleStatus.ACTIVE
        assert resumed.next_execution_date == date(2024, 1, 15)

        types = event_types(audit_storage, schedule.id)
        assert types == [AuditEventType.SCHEDULE_PAUSED, AuditEventType.SCHEDULE_RESUMED]

    def test_resume_skips_missed_occurrences(self, service, schedule_storage, accounts):
        schedule = seed(schedule_storage, make_schedule(status=ScheduleStatus.PAUSED))

        resumed = run_async(service.resume(schedule.id, as_of=date(2024, 3, 20)))

        assert resumed.next_execution_date == date(2024, 4, 15)
        summary = run_async(service.run_due_schedules(as_of=date(2024, 3, 20)))
        assert summary.processed == 0
        assert accounts.apply_calls == []

    def test_resumed_yearly_keeps_its_month(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            recurrence=YearlyRecurrence(day_of_month=15),
            start_date=date(2024, 3, 15),
            last_execution_date=date(2024, 3, 15),
            next_execution_date=date(2025, 3, 15),
            status=ScheduleStatus.PAUSED,
        ))
        resumed = run_async(service.resume(schedule.id, as_of=date(2025, 7, 1)))
        assert resumed.next_execution_date == date(2026, 3, 15)

    def test_resumed_quarterly_keeps_its_cadence(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            recurrence=QuarterlyRecurrence(day_of_month=15),
            start_date=date(2024, 1, 15),
            last_execution_date=date(2024, 1, 15),
            next_execution_date=date(2024, 4, 15),
            status=ScheduleStatus.PAUSED,
        ))
        resumed = run_async(service.resume(schedule.id, as_of=date(2024, 5, 1)))
        assert resumed.next_execution_date == date(2024, 7, 15)

    def test_resume_past_end_completes(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule(
            status=ScheduleStatus.PAUSED,
            end_date=date(2024, 3, 1),
        ))
        resumed = run_async(service.resume(schedule.id, as_of=date(2024, 3, 20)))
        assert resumed.status == ScheduleStatus.COMPLETED

    def test_paused_schedule_is_not_executed(self, service, schedule_storage, accounts):
        schedule = seed(schedule_storage, make_schedule())
        run_async(service.pause(schedule.id))

        summary = run_async(service.run_due_schedules(as_of=date(2024, 1, 15)))

        assert summary.processed == 0
        assert accounts.balance_of("main") == Decimal("1000.00")

    def test_cancel_is_final(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        run_async(service.cancel(schedule.id))
        with pytest.raises(InvalidStatusTransitionError):
            run_async(service.resume(schedule.id, as_of=AS_OF))
        with pytest.raises(InvalidStatusTransitionError):
            run_async(service.pause(schedule.id))

    def test_pause_twice(self, service, schedule_storage):
        schedule = seed(schedule_storage, make_schedule())
        run_async(service.pause(schedule.id))
        with pytest.raises(InvalidStatusTransitionError):
            run_async(service.pause(schedule.id))


class TestListing:

    def test_pagination(self, service, schedule_storage):
        for day in (5, 10, 20):
            seed(schedule_storage, make_schedule(next_execution_date=date(2024, 1, day)))

        first = run_async(service.list_schedules(page=1, limit=2))
        second = run_async(service.list_schedules(page=2, limit=2))

        assert [s.next_execution_date.day for s in first.items] == [5, 10]
        assert [s.next_execution_date.day for s in second.items] == [20]
        assert first.total_count == 3
        assert first.total_pages == 2

    def test_filters(self, service, schedule_storage):
        seed(schedule_storage, make_schedule())
        paused = seed(schedule_storage, make_schedule(status=ScheduleStatus.PAUSED))
        seed(schedule_storage, make_schedule(account_id="savings"))

        result = run_async(service.list_schedules(ScheduleFilters(status=ScheduleStatus.PAUSED)))
        assert [s.id for s in result.items] == [paused.id]

        result = run_async(service.list_schedules(ScheduleFilters(account_id="savings")))
        assert result.total_count == 1

    def test_invalid_page(self, service):
        with pytest.raises(ValueError):
            run_async(service.list_schedules(page=0))


class TestEndToEnd:

    def test_create_run_and_inspect(self, service, accounts, notifications):
        schedule = create(service, end_date=date(2024, 3, 31))

        for as_of in (date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)):
            run_async(service.run_due_schedules(as_of=as_of))

        final = run_async(service.get(schedule.id))
        assert final.status == ScheduleStatus.COMPLETED
        assert accounts.balance_of("main") == Decimal("850.00")

        history = run_async(service.list_transactions(schedule.id))
        assert [t.transaction_date for t in history] == [
            date(2024, 3, 15),
            date(2024, 2, 15),
            date(2024, 1, 15),
        ]

    def test_manual_flow(self, service):
        schedule = create(service, auto_execute=False)

        pending = run_async(service.get_pending_confirmation(as_of=date(2024, 1, 15)))
        assert [s.id for s in pending] == [schedule.id]

        run_async(service.confirm_execution(schedule.id, as_of=date(2024, 1, 15)))
        assert run_async(service.get_pending_confirmation(as_of=date(2024, 1, 15))) == []

    def test_blocked_shows_up_in_upcoming(self, service, accounts):
        accounts.open_account("main", Decimal("10.00"))
        schedule = create(service)
        run_async(service.run_due_schedules(as_of=date(2024, 1, 15)))

        result = run_async(service.get_upcoming(horizon_days=3, now=date(2024, 1, 16)))

        assert [s.id for s in result.insufficient_funds_transactions] == [schedule.id]
        assert result.upcoming_transactions == []


class TestComponents:

    def test_memory_backend(self):
        service, sheets_client = create_app_components("memory")
        assert isinstance(service, ScheduleService)
        assert sheets_client is None
