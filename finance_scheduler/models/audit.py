"""
Audit Models for Finance Scheduler

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of every balance change
2. Debugging information when a run goes wrong
3. A history the user can inspect per schedule

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_scheduler.models.schedule import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # User actions on schedules
    SCHEDULE_CREATED = "schedule_created"
    SCHEDULE_UPDATED = "schedule_updated"
    SCHEDULE_DELETED = "schedule_deleted"
    SCHEDULE_PAUSED = "schedule_paused"
    SCHEDULE_RESUMED = "schedule_resumed"
    SCHEDULE_CANCELLED = "schedule_cancelled"

    # Engine
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_ABORTED = "run_aborted"
    TRANSACTION_EXECUTED = "transaction_executed"
    PENDING_CONFIRMATION = "pending_confirmation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXECUTION_FAILED = "execution_failed"
    SCHEDULE_COMPLETED = "schedule_completed"

    # Delivery
    NOTIFICATION_FAILED = "notification_failed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'schedule', 'transaction', 'run')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - all events of one batch run share the run ID
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.schedule_created(schedule_id, "monthly", next_date)
        event = AuditEventBuilder.transaction_executed(schedule_id, tx_id, ...)
    """

    @staticmethod
    def schedule_created(
        schedule_id: UUID,
        frequency: str,
        next_execution_date: date,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_CREATED,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Schedule created ({frequency}), first run {next_execution_date.isoformat()}",
            details={
                "frequency": frequency,
                "next_execution_date": _iso(next_execution_date),
            },
            is_user_action=True,
        )

    @staticmethod
    def schedule_updated(
        schedule_id: UUID,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_UPDATED,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Schedule updated: {', '.join(sorted(changed_fields)) or 'no changes'}",
            details={"changed_fields": sorted(changed_fields)},
            is_user_action=True,
        )

    @staticmethod
    def schedule_deleted(schedule_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_DELETED,
            entity_type="schedule",
            entity_id=schedule_id,
            description="Schedule deleted",
            is_user_action=True,
        )

    @staticmethod
    def status_changed(
        schedule_id: UUID,
        old_status: str,
        new_status: str,
        next_execution_date: Optional[date] = None,
    ) -> AuditEvent:
        event_type = {
            "paused": AuditEventType.SCHEDULE_PAUSED,
            "active": AuditEventType.SCHEDULE_RESUMED,
            "cancelled": AuditEventType.SCHEDULE_CANCELLED,
        }.get(new_status, AuditEventType.SCHEDULE_UPDATED)
        return AuditEvent(
            event_type=event_type,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Schedule status changed: {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
                "next_execution_date": _iso(next_execution_date),
            },
            is_user_action=True,
        )

    @staticmethod
    def run_started(run_id: UUID, as_of: date, due_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_STARTED,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description=f"Run for {as_of.isoformat()} started with {due_count} due schedules",
            details={"as_of": as_of.isoformat(), "due_count": due_count},
        )

    @staticmethod
    def run_completed(run_id: UUID, as_of: date, counts: dict[str, int]) -> AuditEvent:
        aborted = counts.get("aborted", 0) > 0
        return AuditEvent(
            event_type=AuditEventType.RUN_ABORTED if aborted else AuditEventType.RUN_COMPLETED,
            severity=AuditSeverity.WARNING if aborted else AuditSeverity.INFO,
            entity_type="run",
            entity_id=run_id,
            correlation_id=run_id,
            description=(
                f"Run for {as_of.isoformat()} {'aborted' if aborted else 'completed'}: "
                f"{counts.get('executed', 0)} executed, {counts.get('failed', 0)} failed"
            ),
            details={"as_of": as_of.isoformat(), **counts},
        )

    @staticmethod
    def transaction_executed(
        schedule_id: UUID,
        transaction_id: UUID,
        occurrence_date: date,
        amount: str,
        next_execution_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_EXECUTED,
            entity_type="schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Occurrence {occurrence_date.isoformat()} executed for {amount}",
            details={
                "transaction_id": str(transaction_id),
                "occurrence_date": occurrence_date.isoformat(),
                "amount": amount,
                "next_execution_date": next_execution_date.isoformat(),
            },
        )

    @staticmethod
    def pending_confirmation(
        schedule_id: UUID,
        occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PENDING_CONFIRMATION,
            entity_type="schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Occurrence {occurrence_date.isoformat()} awaits manual confirmation",
            details={"occurrence_date": occurrence_date.isoformat()},
        )

    @staticmethod
    def insufficient_funds(
        schedule_id: UUID,
        account_id: str,
        amount: str,
        occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSUFFICIENT_FUNDS,
            severity=AuditSeverity.WARNING,
            entity_type="schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Insufficient funds on account {account_id} for {amount}",
            details={
                "account_id": account_id,
                "amount": amount,
                "occurrence_date": occurrence_date.isoformat(),
            },
        )

    @staticmethod
    def execution_failed(
        schedule_id: UUID,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXECUTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description=f"Execution failed: {error_type}",
            error_code=error_type,
            error_message=error_message,
        )

    @staticmethod
    def schedule_completed(
        schedule_id: UUID,
        last_execution_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_COMPLETED,
            entity_type="schedule",
            entity_id=schedule_id,
            correlation_id=correlation_id,
            description="Schedule completed: no occurrence left before end date",
            details={"last_execution_date": last_execution_date.isoformat()},
        )

    @staticmethod
    def notification_failed(
        notification_type: str,
        schedule_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Notification '{notification_type}' could not be delivered",
            error_message=error_message,
            details={"notification_type": notification_type},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
