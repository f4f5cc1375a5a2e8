"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of every balance change
2. Debugging capability when a run goes wrong
3. A per-schedule history the user can inspect

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a broken audit sheet never fails a run)
- Uses the run ID as correlation ID to trace everything one run did
"""

import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_scheduler.models.audit import AuditEvent, AuditEventBuilder
from finance_scheduler.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structured logs to stderr at the given level.

    structlog filters by the stdlib level, so nothing below WARNING
    shows up until this has been called.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_scheduler.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Schedule lifecycle
    # -------------------------------------------------------------------------

    async def log_schedule_created(
        self,
        schedule_id: UUID,
        frequency: str,
        next_execution_date: date,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_created(
            schedule_id=schedule_id,
            frequency=frequency,
            next_execution_date=next_execution_date,
        ))

    async def log_schedule_updated(self, schedule_id: UUID, changed_fields: list[str]) -> None:
        await self.log(AuditEventBuilder.schedule_updated(schedule_id, changed_fields))

    async def log_schedule_deleted(self, schedule_id: UUID) -> None:
        await self.log(AuditEventBuilder.schedule_deleted(schedule_id))

    async def log_status_changed(
        self,
        schedule_id: UUID,
        old_status: str,
        new_status: str,
        next_execution_date: Optional[date] = None,
    ) -> None:
        """Log a user-driven pause, resume or cancel."""
        await self.log(AuditEventBuilder.status_changed(
            schedule_id=schedule_id,
            old_status=old_status,
            new_status=new_status,
            next_execution_date=next_execution_date,
        ))

    # -------------------------------------------------------------------------
    # Engine
    # -------------------------------------------------------------------------

    async def log_run_started(self, run_id: UUID, as_of: date, due_count: int) -> None:
        await self.log(AuditEventBuilder.run_started(run_id, as_of, due_count))

    async def log_run_completed(self, run_id: UUID, as_of: date, counts: dict[str, int]) -> None:
        await self.log(AuditEventBuilder.run_completed(run_id, as_of, counts))

    async def log_transaction_executed(
        self,
        schedule_id: UUID,
        transaction_id: UUID,
        occurrence_date: date,
        amount: Decimal,
        next_execution_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_executed(
            schedule_id=schedule_id,
            transaction_id=transaction_id,
            occurrence_date=occurrence_date,
            amount=str(amount),
            next_execution_date=next_execution_date,
            correlation_id=correlation_id,
        ))

    async def log_pending_confirmation(
        self,
        schedule_id: UUID,
        occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.pending_confirmation(
            schedule_id=schedule_id,
            occurrence_date=occurrence_date,
            correlation_id=correlation_id,
        ))

    async def log_insufficient_funds(
        self,
        schedule_id: UUID,
        account_id: str,
        amount: Decimal,
        occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.insufficient_funds(
            schedule_id=schedule_id,
            account_id=account_id,
            amount=str(amount),
            occurrence_date=occurrence_date,
            correlation_id=correlation_id,
        ))

    async def log_execution_failed(
        self,
        schedule_id: UUID,
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a retryable execution failure (gateway/storage error)."""
        await self.log(AuditEventBuilder.execution_failed(
            schedule_id=schedule_id,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    async def log_schedule_completed(
        self,
        schedule_id: UUID,
        last_execution_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_completed(
            schedule_id=schedule_id,
            last_execution_date=last_execution_date,
            correlation_id=correlation_id,
        ))

    async def log_notification_failed(
        self,
        notification_type: str,
        schedule_id: UUID,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.notification_failed(
            notification_type=notification_type,
            schedule_id=schedule_id,
            error_message=error_message,
        ))

    # -------------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------------

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    The engine uses the run ID; user actions outside a run can call this.
    """
    return uuid4()
