"""
Main Orchestrator for Finance Scheduler

This module ties together all the components and defines the
operations exposed to the CLI and the dashboard:
1. Schedule management (create → validate → store, update, delete)
2. Lifecycle (pause, resume, cancel)
3. Execution (batch run, manual confirmation)
4. Views (listing, upcoming/blocked, transaction history)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches storage without passing validation
- Users can only move a schedule along the status state machine
- Every user action is audited

User edits take the same per-schedule lock as the engine, so an edit
never interleaves with the execution of the same schedule.
"""

import asyncio
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

import structlog

from finance_scheduler.audit import AuditLogger
from finance_scheduler.config import get_settings
from finance_scheduler.engine import (
    ExecutionEngine,
    InvalidStatusTransitionError,
    ScheduleNotActiveError,
    ensure_transition,
)
from finance_scheduler.models.schedule import (
    ExecutionAttempt,
    MaterializedTransaction,
    RunSummary,
    ScheduleDefinition,
    ScheduleFilters,
    ScheduleList,
    ScheduleStatus,
    ScheduleUpdate,
    ScheduledTransaction,
    UpcomingTransactions,
    ValidationResult,
    utcnow,
)
from finance_scheduler.queries import UpcomingTransactionsQuery
from finance_scheduler.recurrence import occurrence_on_or_after
from finance_scheduler.services.gateways import (
    AccountBalanceGateway,
    GoogleSheetsAccountGateway,
    GoogleSheetsNotificationGateway,
    InMemoryAccountGateway,
    InMemoryNotificationGateway,
    NotificationGateway,
)
from finance_scheduler.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsScheduleStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryScheduleStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    ScheduleStorageInterface,
    TransactionStorageInterface,
)
from finance_scheduler.validation import InvalidDateRangeError, ScheduleValidator


logger = structlog.get_logger("finance_scheduler.orchestrator")

# Fields whose change moves the execution cursor
_TIMING_FIELDS = {"frequency", "day_of_week", "day_of_month", "start_date"}

# Fields whose change lifts an insufficient-funds block
_FUNDING_FIELDS = {"amount", "account_id"}


class ScheduleService:
    """
    The API of the scheduled-transaction engine.

    All dates default to today when omitted; tests and the batch
    trigger pass them explicitly.
    """

    def __init__(
        self,
        schedule_storage: ScheduleStorageInterface,
        transaction_storage: TransactionStorageInterface,
        account_gateway: AccountBalanceGateway,
        notification_gateway: NotificationGateway,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[ScheduleValidator] = None,
        engine: Optional[ExecutionEngine] = None,
    ):
        self._schedules = schedule_storage
        self._transactions = transaction_storage
        self._accounts = account_gateway
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or ScheduleValidator()
        self._engine = engine or ExecutionEngine(
            schedule_storage=schedule_storage,
            transaction_storage=transaction_storage,
            account_gateway=account_gateway,
            notification_gateway=notification_gateway,
            audit_logger=self._audit,
        )
        self._query = UpcomingTransactionsQuery(schedule_storage)

    @property
    def accounts(self) -> AccountBalanceGateway:
        return self._accounts

    @property
    def validator(self) -> ScheduleValidator:
        return self._validator

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_schedules(
        self,
        filters: Optional[ScheduleFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ScheduleList:
        """One page of schedules, ordered by next execution date."""
        filters = filters or ScheduleFilters()
        limit = limit or get_settings().scheduler.default_page_size
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        criteria = filters.model_dump()
        items = await self._schedules.list_schedules(
            **criteria,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = await self._schedules.count_schedules(**criteria)
        return ScheduleList(items=items, total_count=total, page=page, limit=limit)

    async def get(self, schedule_id: UUID) -> ScheduledTransaction:
        """
        Raises:
            NotFoundError: If the schedule doesn't exist
        """
        schedule = await self._schedules.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError(f"Schedule not found: {schedule_id}")
        return schedule

    async def list_transactions(
        self,
        schedule_id: UUID,
        limit: int = 100,
    ) -> list[MaterializedTransaction]:
        """Transactions materialized from a schedule, newest first."""
        return await self._transactions.list_transactions(
            scheduled_transaction_id=schedule_id,
            limit=limit,
        )

    async def get_upcoming(
        self,
        horizon_days: Optional[int] = None,
        now: Optional[date] = None,
    ) -> UpcomingTransactions:
        return await self._query.get_upcoming(horizon_days=horizon_days, now=now)

    async def get_pending_confirmation(
        self,
        as_of: Optional[date] = None,
    ) -> list[ScheduledTransaction]:
        return await self._query.get_pending_confirmation(as_of)

    # -------------------------------------------------------------------------
    # Create / update / delete
    # -------------------------------------------------------------------------

    def preview(
        self,
        definition: ScheduleDefinition,
        as_of: Optional[date] = None,
    ) -> ValidationResult:
        """Validate a definition without storing anything."""
        return self._validator.validate_definition(definition, as_of=as_of or date.today())

    async def create(
        self,
        definition: ScheduleDefinition,
        as_of: Optional[date] = None,
    ) -> ScheduledTransaction:
        """
        Validate and store a new active schedule.

        Raises:
            RecurrenceError: Invalid frequency or anchor
            InvalidDateRangeError: Empty or inverted date range
        """
        result = self.preview(definition, as_of)

        schedule = ScheduledTransaction(
            account_id=definition.account_id,
            category_id=definition.category_id,
            base_transaction_id=definition.base_transaction_id,
            amount=definition.amount,
            type=definition.type,
            description=definition.description,
            payee=definition.payee,
            tags=definition.tags,
            recurrence=result.recurrence,
            start_date=definition.start_date,
            end_date=definition.end_date,
            next_execution_date=result.first_execution_date,
            auto_execute=definition.auto_execute,
        )
        await self._schedules.save_schedule(schedule)

        for issue in result.issues:
            logger.info("schedule_validation_note", schedule_id=str(schedule.id), **issue.model_dump())
        await self._audit.log_schedule_created(
            schedule_id=schedule.id,
            frequency=schedule.frequency.value,
            next_execution_date=schedule.next_execution_date,
        )
        return schedule

    def _recompute_next(
        self,
        schedule: ScheduledTransaction,
        result: ValidationResult,
        start_date: date,
    ) -> date:
        """First occurrence counted from start that is also after the last execution."""
        if schedule.last_execution_date is None:
            return result.first_execution_date
        return occurrence_on_or_after(
            result.recurrence,
            result.first_execution_date,
            schedule.last_execution_date + timedelta(days=1),
        )

    async def update(
        self,
        schedule_id: UUID,
        changes: ScheduleUpdate,
        as_of: Optional[date] = None,
    ) -> ScheduledTransaction:
        """
        Apply a partial update.

        Only fields present in `changes` are touched. A timing change
        recomputes next_execution_date; an amount or account change lifts
        an insufficient-funds block.

        Raises:
            NotFoundError: If the schedule doesn't exist
            ScheduleNotActiveError: If the schedule is completed or cancelled
            InvalidStatusTransitionError: For a disallowed status change
            RecurrenceError / InvalidDateRangeError: For invalid timing
        """
        as_of = as_of or date.today()
        provided = changes.provided()

        async with self._engine.schedule_locks.hold(schedule_id):
            schedule = await self.get(schedule_id)
            if schedule.status.is_terminal:
                raise ScheduleNotActiveError(schedule.id, schedule.status)

            target_status = provided.pop("status", None) or schedule.status
            if target_status != schedule.status:
                # Completion is reserved for the engine
                if target_status == ScheduleStatus.COMPLETED:
                    raise InvalidStatusTransitionError(schedule.id, schedule.status, target_status)
                ensure_transition(schedule, target_status)

            data = schedule.model_dump()
            data.update({
                name: value for name, value in provided.items()
                if name not in _TIMING_FIELDS | {"end_date"}
            })

            start_date = provided.get("start_date", schedule.start_date)
            end_date = provided.get("end_date", schedule.end_date)
            result = self._validator.validate_timing(
                frequency=provided.get("frequency", schedule.frequency.value),
                start_date=start_date,
                end_date=end_date,
                day_of_week=provided.get("day_of_week", schedule.day_of_week),
                day_of_month=provided.get("day_of_month", schedule.day_of_month),
            )
            data["recurrence"] = result.recurrence
            data["start_date"] = start_date
            data["end_date"] = end_date

            next_date = schedule.next_execution_date
            if _TIMING_FIELDS & provided.keys():
                next_date = self._recompute_next(schedule, result, start_date)
            resuming = schedule.status == ScheduleStatus.PAUSED and target_status == ScheduleStatus.ACTIVE
            if resuming and next_date < as_of:
                next_date = occurrence_on_or_after(result.recurrence, next_date, as_of)
            data["next_execution_date"] = next_date

            if end_date is not None and next_date > end_date:
                if target_status != ScheduleStatus.ACTIVE:
                    raise InvalidDateRangeError(
                        f"No occurrence left before end date ({end_date})",
                        start_date,
                        end_date,
                    )
                target_status = ScheduleStatus.COMPLETED
            data["status"] = target_status

            if _FUNDING_FIELDS & provided.keys():
                data["insufficient_funds"] = False
                data["insufficient_funds_since"] = None
            data["updated_at"] = utcnow()

            updated = ScheduledTransaction.model_validate(data)

            await self._schedules.update_schedule(updated)

        changed = [
            name for name in provided
            if getattr(schedule, name, None) != getattr(updated, name, None)
        ]
        await self._audit.log_schedule_updated(schedule.id, changed)
        if updated.status != schedule.status:
            await self._audit.log_status_changed(
                schedule.id,
                schedule.status.value,
                updated.status.value,
                updated.next_execution_date,
            )
        return updated

    async def delete(self, schedule_id: UUID) -> None:
        """
        Hard-delete a schedule. Its materialized transactions are kept.

        Raises:
            NotFoundError: If the schedule doesn't exist
        """
        async with self._engine.schedule_locks.hold(schedule_id):
            if not await self._schedules.delete_schedule(schedule_id):
                raise NotFoundError(f"Schedule not found: {schedule_id}")
        await self._audit.log_schedule_deleted(schedule_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _change_status(
        self,
        schedule_id: UUID,
        target: ScheduleStatus,
        as_of: Optional[date] = None,
    ) -> ScheduledTransaction:
        async with self._engine.schedule_locks.hold(schedule_id):
            schedule = await self.get(schedule_id)
            ensure_transition(schedule, target)

            update = {"status": target, "updated_at": utcnow()}
            if target == ScheduleStatus.ACTIVE:
                # Missed occurrences are skipped, not caught up
                as_of = as_of or date.today()
                if schedule.next_execution_date < as_of:
                    update["next_execution_date"] = occurrence_on_or_after(
                        schedule.recurrence,
                        schedule.next_execution_date,
                        as_of,
                    )
                next_date = update.get("next_execution_date", schedule.next_execution_date)
                if schedule.end_date is not None and next_date > schedule.end_date:
                    update["status"] = ScheduleStatus.COMPLETED

            updated = schedule.model_copy(update=update)
            await self._schedules.update_schedule(updated)

        await self._audit.log_status_changed(
            schedule.id,
            schedule.status.value,
            updated.status.value,
            updated.next_execution_date,
        )
        return updated

    async def pause(self, schedule_id: UUID) -> ScheduledTransaction:
        return await self._change_status(schedule_id, ScheduleStatus.PAUSED)

    async def resume(
        self,
        schedule_id: UUID,
        as_of: Optional[date] = None,
    ) -> ScheduledTransaction:
        """Reactivate a paused schedule, skipping occurrences missed while paused."""
        return await self._change_status(schedule_id, ScheduleStatus.ACTIVE, as_of)

    async def cancel(self, schedule_id: UUID) -> ScheduledTransaction:
        return await self._change_status(schedule_id, ScheduleStatus.CANCELLED)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def confirm_execution(
        self,
        schedule_id: UUID,
        as_of: Optional[date] = None,
    ) -> ExecutionAttempt:
        return await self._engine.confirm_execution(schedule_id, as_of or date.today())

    async def run_due_schedules(
        self,
        as_of: Optional[date] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        return await self._engine.run_due_schedules(as_of or date.today(), cancel_event)


def _memory_backend() -> tuple[
    ScheduleStorageInterface,
    TransactionStorageInterface,
    AccountBalanceGateway,
    NotificationGateway,
    AuditStorageInterface,
]:
    return (
        InMemoryScheduleStorage(),
        InMemoryTransactionStorage(),
        InMemoryAccountGateway(),
        InMemoryNotificationGateway(),
        InMemoryAuditStorage(),
    )


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[ScheduleService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets". Defaults to the
                 configured storage backend.

    Returns:
        (schedule_service, sheets_client)
    """
    backend = backend or get_settings().app.storage_backend
    sheets_client = None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            components = (
                GoogleSheetsScheduleStorage(sheets_client),
                GoogleSheetsTransactionStorage(sheets_client),
                GoogleSheetsAccountGateway(sheets_client),
                GoogleSheetsNotificationGateway(sheets_client),
                GoogleSheetsAuditStorage(sheets_client),
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend=backend, error=str(e))
            sheets_client = None
            components = _memory_backend()
    else:
        components = _memory_backend()

    schedules, transactions, accounts, notifications, audit_storage = components
    service = ScheduleService(
        schedule_storage=schedules,
        transaction_storage=transactions,
        account_gateway=accounts,
        notification_gateway=notifications,
        audit_logger=AuditLogger(audit_storage),
    )
    return service, sheets_client
