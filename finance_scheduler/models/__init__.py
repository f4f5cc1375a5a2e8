"""
Data Models Package

This package contains all Pydantic models used by the Finance Scheduler.
All data flowing through the system must conform to these schemas.
"""

from finance_scheduler.models.schedule import (
    DailyRecurrence,
    ExecutionAttempt,
    ExecutionOutcome,
    Frequency,
    MaterializedTransaction,
    MonthlyRecurrence,
    QuarterlyRecurrence,
    Recurrence,
    RunSummary,
    ScheduleDefinition,
    ScheduleFilters,
    ScheduleList,
    ScheduleStatus,
    ScheduleUpdate,
    ScheduledTransaction,
    TransactionType,
    UpcomingTransactions,
    ValidationIssue,
    ValidationResult,
    WeeklyRecurrence,
    YearlyRecurrence,
    materialized_transaction_id,
)
from finance_scheduler.models.notification import (
    NotificationEvent,
    NotificationEventBuilder,
    NotificationSeverity,
    NotificationType,
)
from finance_scheduler.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Schedule models
    "DailyRecurrence",
    "ExecutionAttempt",
    "ExecutionOutcome",
    "Frequency",
    "MaterializedTransaction",
    "MonthlyRecurrence",
    "QuarterlyRecurrence",
    "Recurrence",
    "RunSummary",
    "ScheduleDefinition",
    "ScheduleFilters",
    "ScheduleList",
    "ScheduleStatus",
    "ScheduleUpdate",
    "ScheduledTransaction",
    "TransactionType",
    "UpcomingTransactions",
    "ValidationIssue",
    "ValidationResult",
    "WeeklyRecurrence",
    "YearlyRecurrence",
    "materialized_transaction_id",
    # Notification models
    "NotificationEvent",
    "NotificationEventBuilder",
    "NotificationSeverity",
    "NotificationType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
