"""
Tests for Finance Scheduler models

Test strategy:
1. Unit tests for individual components (models, validators, date math)
2. Flow tests against in-memory storage and gateways
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from finance_scheduler.models.schedule import (
    DailyRecurrence,
    ExecutionAttempt,
    ExecutionOutcome,
    MaterializedTransaction,
    MonthlyRecurrence,
    Recurrence,
    RunSummary,
    ScheduleList,
    ScheduleStatus,
    ScheduleUpdate,
    TransactionType,
    WeeklyRecurrence,
    materialized_transaction_id,
)
from finance_scheduler.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_scheduler.models.notification import (
    NotificationEventBuilder,
    NotificationSeverity,
    NotificationType,
)

from conftest import make_schedule


class TestRecurrenceModels:
    """Tests for the per-frequency recurrence variants."""

    def test_discriminator_picks_variant(self):
        """Test that the frequency tag selects the model."""
        adapter = TypeAdapter(Recurrence)
        assert isinstance(adapter.validate_python({"frequency": "weekly", "day_of_week": 1}), WeeklyRecurrence)
        assert isinstance(adapter.validate_python({"frequency": "daily"}), DailyRecurrence)

    def test_weekly_requires_day_of_week(self):
        with pytest.raises(ValidationError):
            TypeAdapter(Recurrence).validate_python({"frequency": "weekly"})

    def test_day_of_month_range(self):
        with pytest.raises(ValidationError):
            MonthlyRecurrence(day_of_month=32)
        with pytest.raises(ValidationError):
            MonthlyRecurrence(day_of_month=0)

    def test_recurrence_is_frozen(self):
        recurrence = MonthlyRecurrence(day_of_month=5)
        with pytest.raises(ValidationError):
            recurrence.day_of_month = 6


class TestScheduledTransaction:
    """Tests for the schedule model and its date invariants."""

    def test_anchor_properties(self):
        schedule = make_schedule()
        assert schedule.day_of_month == 15
        assert schedule.day_of_week is None
        assert schedule.frequency.value == "monthly"

    def test_signed_amount(self):
        assert make_schedule().signed_amount == Decimal("-50.00")
        assert make_schedule(type=TransactionType.INCOME).signed_amount == Decimal("50.00")

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            make_schedule(amount=Decimal("0"))
        with pytest.raises(ValidationError):
            make_schedule(amount=Decimal("-5.00"))

    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValidationError):
            make_schedule(amount=Decimal("10.001"))

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            make_schedule(end_date=date(2023, 12, 31))

    def test_next_before_start_rejected(self):
        with pytest.raises(ValidationError):
            make_schedule(next_execution_date=date(2023, 12, 15))

    def test_active_next_after_end_rejected(self):
        with pytest.raises(ValidationError):
            make_schedule(end_date=date(2024, 1, 10))

    def test_completed_keeps_overflowing_next_date(self):
        schedule = make_schedule(
            end_date=date(2024, 1, 10),
            status=ScheduleStatus.COMPLETED,
        )
        assert schedule.next_execution_date > schedule.end_date

    def test_is_due(self):
        schedule = make_schedule()
        assert schedule.is_due(date(2024, 1, 15))
        assert schedule.is_due(date(2024, 2, 1))
        assert not schedule.is_due(date(2024, 1, 14))
        assert not make_schedule(status=ScheduleStatus.PAUSED).is_due(date(2024, 2, 1))


class TestStatusMachine:
    """Tests for allowed status transitions."""

    def test_terminal_states(self):
        assert ScheduleStatus.COMPLETED.is_terminal
        assert ScheduleStatus.CANCELLED.is_terminal
        assert not ScheduleStatus.PAUSED.is_terminal

    def test_allowed_transitions(self):
        assert ScheduleStatus.ACTIVE.can_transition_to(ScheduleStatus.PAUSED)
        assert ScheduleStatus.PAUSED.can_transition_to(ScheduleStatus.ACTIVE)
        assert ScheduleStatus.PAUSED.can_transition_to(ScheduleStatus.CANCELLED)

    def test_forbidden_transitions(self):
        assert not ScheduleStatus.PAUSED.can_transition_to(ScheduleStatus.COMPLETED)
        assert not ScheduleStatus.CANCELLED.can_transition_to(ScheduleStatus.ACTIVE)
        assert not ScheduleStatus.COMPLETED.can_transition_to(ScheduleStatus.PAUSED)


class TestScheduleUpdate:
    """Tests for partial update payloads."""

    def test_provided_only_has_explicit_fields(self):
        update = ScheduleUpdate(amount=Decimal("10.00"))
        assert update.provided() == {"amount": Decimal("10.00")}

    def test_explicit_none_is_provided(self):
        update = ScheduleUpdate(end_date=None)
        assert update.provided() == {"end_date": None}


class TestExecutionModels:
    """Tests for transactions, attempts and run summaries."""

    def test_transaction_id_is_deterministic(self):
        schedule_id = uuid4()
        first = materialized_transaction_id(schedule_id, date(2024, 1, 15))
        assert first == materialized_transaction_id(schedule_id, date(2024, 1, 15))
        assert first != materialized_transaction_id(schedule_id, date(2024, 2, 15))

    def test_transaction_from_schedule(self):
        schedule = make_schedule(tags={"health"})
        transaction = MaterializedTransaction.from_schedule(schedule, Decimal("950.00"))
        assert transaction.id == materialized_transaction_id(schedule.id, date(2024, 1, 15))
        assert transaction.transaction_date == date(2024, 1, 15)
        assert transaction.signed_amount == Decimal("-50.00")
        assert transaction.tags == {"health"}

    def test_run_summary_counts(self):
        schedule_id = uuid4()

        def attempt(outcome):
            return ExecutionAttempt(
                scheduled_transaction_id=schedule_id,
                attempted_date=date(2024, 1, 15),
                occurrence_date=date(2024, 1, 15),
                outcome=outcome,
            )

        summary = RunSummary(
            as_of=date(2024, 1, 15),
            attempts=[
                attempt(ExecutionOutcome.EXECUTED),
                attempt(ExecutionOutcome.EXECUTED),
                attempt(ExecutionOutcome.FAILED),
                attempt(ExecutionOutcome.PENDING_CONFIRMATION),
            ],
            aborted=1,
        )
        counts = summary.counts()
        assert counts["processed"] == 4
        assert counts["executed"] == 2
        assert counts["failed"] == 1
        assert counts["pending_confirmation"] == 1
        assert counts["aborted"] == 1

    def test_schedule_list_pages(self):
        assert ScheduleList(total_count=0, page=1, limit=10).total_pages == 0
        assert ScheduleList(total_count=21, page=1, limit=10).total_pages == 3


class TestNotificationModels:
    """Tests for notification events."""

    def test_insufficient_funds_event(self):
        schedule = make_schedule()
        event = NotificationEventBuilder.insufficient_funds(schedule, Decimal("12.00"))
        assert event.type == NotificationType.INSUFFICIENT_FUNDS
        assert event.severity == NotificationSeverity.DANGER
        assert event.occurrence_date == date(2024, 1, 15)
        assert "12.00" in event.message

    def test_execution_failed_event(self):
        event = NotificationEventBuilder.execution_failed(make_schedule(), "x" * 2000)
        assert event.type == NotificationType.EXECUTION_FAILED
        assert event.severity == NotificationSeverity.WARNING
        assert "2024-01-15" in event.message
        assert len(event.message) <= 1000

    def test_sheets_row_has_all_columns(self):
        event = NotificationEventBuilder.insufficient_funds(make_schedule())
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[-1] == ""


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SCHEDULE_CREATED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.SCHEDULE_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_EXECUTED,
            description="Occurrence executed",
            details={"amount": "50.00"},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transaction_executed"
        assert log_dict["details"]["amount"] == "50.00"

    def test_status_change_maps_event_type(self):
        schedule_id = uuid4()
        paused = AuditEventBuilder.status_changed(schedule_id, "active", "paused")
        resumed = AuditEventBuilder.status_changed(schedule_id, "paused", "active")
        assert paused.event_type == AuditEventType.SCHEDULE_PAUSED
        assert resumed.event_type == AuditEventType.SCHEDULE_RESUMED
        assert paused.is_user_action

    def test_aborted_run_is_a_warning(self):
        run_id = uuid4()
        event = AuditEventBuilder.run_completed(run_id, date(2024, 1, 15), {"executed": 1, "aborted": 2})
        assert event.event_type == AuditEventType.RUN_ABORTED
        assert event.severity == AuditSeverity.WARNING
        assert event.correlation_id == run_id

    def test_execution_failed_carries_error(self):
        event = AuditEventBuilder.execution_failed(uuid4(), "GatewayError", "ledger down")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_code == "GatewayError"
        assert event.error_message == "ledger down"
