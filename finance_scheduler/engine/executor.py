"""
Execution Engine

Turns due schedules into real balance changes.

Flow for one due schedule:
1. Manual schedule → reported as pending confirmation, left untouched
2. Auto schedule → apply the signed amount to the account
   - success: write the transaction, advance the schedule (or complete it)
   - insufficient funds: flag the schedule, do NOT advance
   - gateway/storage failure: leave the schedule alone, retry next run
3. Notify the user (never rolls anything back)

DESIGN DECISION: Each schedule's state change is a single storage update,
made after the transaction record exists. If a run dies between the two,
the next run finds the transaction (its ID is derived from the occurrence)
and only advances the schedule, so an occurrence is never paid twice.

CONCURRENCY: schedules run in parallel up to max_concurrency, but every
mutation holds the schedule's lock and then the account's lock, always
in that order.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_scheduler.audit import AuditLogger, create_correlation_id
from finance_scheduler.config import SchedulerSettings, get_settings
from finance_scheduler.engine.locks import KeyedLock
from finance_scheduler.models.notification import NotificationEvent, NotificationEventBuilder
from finance_scheduler.models.schedule import (
    ExecutionAttempt,
    ExecutionOutcome,
    MaterializedTransaction,
    RunSummary,
    ScheduledTransaction,
    ScheduleStatus,
    materialized_transaction_id,
    utcnow,
)
from finance_scheduler.recurrence import next_occurrence
from finance_scheduler.services.gateways import (
    AccountBalanceGateway,
    AccountNotFoundError,
    GatewayError,
    GatewayTimeoutError,
    InsufficientFundsError,
    NotificationGateway,
)
from finance_scheduler.services.storage import (
    NotFoundError,
    ScheduleStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger("finance_scheduler.engine")

T = TypeVar("T")


class ScheduleNotActiveError(Exception):
    """The schedule is paused or terminal and cannot be executed."""

    def __init__(self, schedule_id: UUID, status: ScheduleStatus):
        self.schedule_id = schedule_id
        self.status = status
        super().__init__(f"Schedule {schedule_id} is {status.value}, not active")


class InvalidStatusTransitionError(Exception):
    """The requested status change is not allowed by the state machine."""

    def __init__(self, schedule_id: UUID, current: ScheduleStatus, target: ScheduleStatus):
        self.schedule_id = schedule_id
        self.current = current
        self.target = target
        super().__init__(
            f"Schedule {schedule_id} cannot go from {current.value} to {target.value}"
        )


def ensure_transition(schedule: ScheduledTransaction, target: ScheduleStatus) -> None:
    """Raise InvalidStatusTransitionError unless current -> target is allowed."""
    if not schedule.status.can_transition_to(target):
        raise InvalidStatusTransitionError(schedule.id, schedule.status, target)


def idempotency_key(schedule_id: UUID, occurrence_date: date) -> str:
    return f"{schedule_id}:{occurrence_date.isoformat()}"


def advance_schedule(schedule: ScheduledTransaction, occurrence: date) -> ScheduledTransaction:
    """
    The schedule after a successful execution of `occurrence`.

    Completes the schedule when the following occurrence is past end_date.
    The overflowing date is kept as next_execution_date for reference.
    """
    next_date = next_occurrence(schedule.recurrence, occurrence)
    status = schedule.status
    if schedule.end_date is not None and next_date > schedule.end_date:
        ensure_transition(schedule, ScheduleStatus.COMPLETED)
        status = ScheduleStatus.COMPLETED

    return schedule.model_copy(update={
        "last_execution_date": occurrence,
        "next_execution_date": next_date,
        "status": status,
        "insufficient_funds": False,
        "insufficient_funds_since": None,
        "updated_at": utcnow(),
    })


class ExecutionEngine:
    """
    Processes due schedules against the account ledger.

    Storage and gateways are injected; the engine holds no state of its
    own apart from the locks.
    """

    def __init__(
        self,
        schedule_storage: ScheduleStorageInterface,
        transaction_storage: TransactionStorageInterface,
        account_gateway: AccountBalanceGateway,
        notification_gateway: NotificationGateway,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        self._schedules = schedule_storage
        self._transactions = transaction_storage
        self._accounts = account_gateway
        self._notifications = notification_gateway
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().scheduler

        self.schedule_locks = KeyedLock()
        self.account_locks = KeyedLock()

    # -------------------------------------------------------------------------
    # Gateway calls
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        """Bound a gateway call by the configured timeout."""
        timeout = self._settings.gateway_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            raise GatewayTimeoutError(operation, timeout) from None

    def _retrying(self, retry) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry,
            stop=stop_after_attempt(self._settings.notification_retry_attempts),
            wait=wait_exponential(multiplier=self._settings.notification_retry_wait_seconds),
            reraise=True,
        )

    async def _read_balance(self, account_id: str) -> Optional[Decimal]:
        """Best-effort balance read for notifications; None if unavailable."""
        try:
            async for attempt in self._retrying(
                retry_if_exception_type(GatewayError)
                & retry_if_not_exception_type(AccountNotFoundError)
            ):
                with attempt:
                    return await self._call(
                        "get_balance",
                        self._accounts.get_balance(account_id),
                    )
        except GatewayError as e:
            logger.warning("balance_unavailable", account_id=account_id, error=str(e))
            await self._audit.log_external_service_error("account_ledger", str(e))
        return None

    async def _notify(self, event: NotificationEvent) -> None:
        """Deliver a notification with a few retries. Never raises."""
        try:
            async for attempt in self._retrying(retry_if_exception_type(GatewayError)):
                with attempt:
                    await self._call("notify", self._notifications.notify(event))
        except Exception as e:
            await self._audit.log_notification_failed(
                notification_type=event.type.value,
                schedule_id=event.scheduled_transaction_id,
                error_message=str(e),
            )

    # -------------------------------------------------------------------------
    # Single schedule
    # -------------------------------------------------------------------------

    @staticmethod
    def _attempt(
        schedule: ScheduledTransaction,
        as_of: date,
        outcome: ExecutionOutcome,
        occurrence: Optional[date] = None,
        **kwargs,
    ) -> ExecutionAttempt:
        return ExecutionAttempt(
            scheduled_transaction_id=schedule.id,
            attempted_date=as_of,
            occurrence_date=occurrence or schedule.next_execution_date,
            outcome=outcome,
            next_execution_date=kwargs.pop("next_execution_date", schedule.next_execution_date),
            status=kwargs.pop("status", schedule.status),
            **kwargs,
        )

    async def _block(
        self,
        schedule: ScheduledTransaction,
        as_of: date,
        error: InsufficientFundsError,
        correlation_id: UUID,
    ) -> ExecutionAttempt:
        """Flag the schedule as blocked without advancing it."""
        blocked = schedule.model_copy(update={
            "insufficient_funds": True,
            "insufficient_funds_since": schedule.insufficient_funds_since or as_of,
            "updated_at": utcnow(),
        })
        await self._schedules.update_schedule(blocked)

        await self._audit.log_insufficient_funds(
            schedule_id=schedule.id,
            account_id=schedule.account_id,
            amount=schedule.amount,
            occurrence_date=schedule.next_execution_date,
            correlation_id=correlation_id,
        )

        balance = error.available
        if balance is None:
            balance = await self._read_balance(schedule.account_id)
        await self._notify(NotificationEventBuilder.insufficient_funds(blocked, balance))

        return self._attempt(
            blocked,
            as_of,
            ExecutionOutcome.INSUFFICIENT_FUNDS,
            message=str(error),
        )

    async def _execute(
        self,
        schedule: ScheduledTransaction,
        as_of: date,
        correlation_id: UUID,
    ) -> ExecutionAttempt:
        """
        Apply one occurrence of an active schedule.

        Caller must hold the schedule's lock.
        """
        occurrence = schedule.next_execution_date
        transaction_id = materialized_transaction_id(schedule.id, occurrence)

        async with self.account_locks.hold(schedule.account_id):
            transaction = await self._transactions.get_transaction(transaction_id)
            if transaction is None:
                try:
                    balance_after = await self._call(
                        "apply_delta",
                        self._accounts.apply_delta(
                            schedule.account_id,
                            schedule.signed_amount,
                            idempotency_key=idempotency_key(schedule.id, occurrence),
                        ),
                    )
                except InsufficientFundsError as e:
                    return await self._block(schedule, as_of, e, correlation_id)

                transaction = MaterializedTransaction.from_schedule(schedule, balance_after)
                await self._transactions.save_transaction(transaction)
            else:
                logger.info(
                    "occurrence_already_materialized",
                    schedule_id=str(schedule.id),
                    occurrence_date=occurrence.isoformat(),
                )

        advanced = advance_schedule(schedule, occurrence)
        await self._schedules.update_schedule(advanced)

        await self._audit.log_transaction_executed(
            schedule_id=schedule.id,
            transaction_id=transaction.id,
            occurrence_date=occurrence,
            amount=schedule.amount,
            next_execution_date=advanced.next_execution_date,
            correlation_id=correlation_id,
        )
        await self._notify(NotificationEventBuilder.executed(advanced, transaction))

        if advanced.status == ScheduleStatus.COMPLETED:
            await self._audit.log_schedule_completed(
                schedule_id=schedule.id,
                last_execution_date=occurrence,
                correlation_id=correlation_id,
            )
            await self._notify(NotificationEventBuilder.schedule_completed(advanced, occurrence))

        return self._attempt(
            advanced,
            as_of,
            ExecutionOutcome.EXECUTED,
            occurrence=occurrence,
            transaction_id=transaction.id,
        )

    async def _failed(
        self,
        schedule: ScheduledTransaction,
        as_of: date,
        error: Exception,
        correlation_id: UUID,
    ) -> ExecutionAttempt:
        await self._audit.log_execution_failed(schedule.id, error, correlation_id)
        await self._notify(NotificationEventBuilder.execution_failed(schedule, str(error)))
        return self._attempt(
            schedule,
            as_of,
            ExecutionOutcome.FAILED,
            message=f"{type(error).__name__}: {error}",
        )

    async def _process(
        self,
        listed: ScheduledTransaction,
        as_of: date,
        run_id: UUID,
    ) -> ExecutionAttempt:
        """Process one schedule selected by a run. Never raises."""
        try:
            async with self.schedule_locks.hold(listed.id):
                # Re-read under the lock: a user may have paused or edited it
                schedule = await self._schedules.get_schedule(listed.id)
                if schedule is None or not schedule.is_due(as_of):
                    return self._attempt(
                        schedule or listed,
                        as_of,
                        ExecutionOutcome.SKIPPED,
                        occurrence=listed.next_execution_date,
                        message="No longer due" if schedule else "Deleted",
                    )

                if not schedule.auto_execute:
                    await self._audit.log_pending_confirmation(
                        schedule_id=schedule.id,
                        occurrence_date=schedule.next_execution_date,
                        correlation_id=run_id,
                    )
                    return self._attempt(schedule, as_of, ExecutionOutcome.PENDING_CONFIRMATION)

                return await self._execute(schedule, as_of, run_id)
        except Exception as e:
            logger.exception("schedule_execution_failed", schedule_id=str(listed.id))
            return await self._failed(listed, as_of, e, run_id)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def run_due_schedules(
        self,
        as_of: date,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        """
        Process every active schedule due on or before as_of.

        Schedules are started in (next_execution_date, id) order. Setting
        cancel_event stops the run before the next schedule starts; the
        ones never started are counted as aborted.
        """
        summary = RunSummary(as_of=as_of)
        due = await self._schedules.list_due(as_of)

        await self._audit.log_run_started(summary.run_id, as_of, len(due))
        logger.info("run_started", run_id=str(summary.run_id), as_of=as_of.isoformat(), due=len(due))

        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def worker(schedule: ScheduledTransaction) -> Optional[ExecutionAttempt]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self._process(schedule, as_of, summary.run_id)

        results = await asyncio.gather(*(worker(s) for s in due))

        summary.attempts = [r for r in results if r is not None]
        summary.aborted = sum(1 for r in results if r is None)
        summary.finished_at = utcnow()

        await self._audit.log_run_completed(summary.run_id, as_of, summary.counts())
        logger.info("run_finished", run_id=str(summary.run_id), **summary.counts())
        return summary

    async def confirm_execution(self, schedule_id: UUID, as_of: date) -> ExecutionAttempt:
        """
        Execute the pending occurrence of a schedule on the user's request.

        Works for manual and automatic schedules alike, and also before
        the occurrence is due.

        Raises:
            NotFoundError: If the schedule doesn't exist
            ScheduleNotActiveError: If the schedule is paused or terminal
        """
        async with self.schedule_locks.hold(schedule_id):
            schedule = await self._schedules.get_schedule(schedule_id)
            if schedule is None:
                raise NotFoundError(f"Schedule not found: {schedule_id}")
            if schedule.status != ScheduleStatus.ACTIVE:
                raise ScheduleNotActiveError(schedule.id, schedule.status)

            correlation_id = create_correlation_id()
            try:
                return await self._execute(schedule, as_of, correlation_id)
            except (GatewayError, StorageError) as e:
                return await self._failed(schedule, as_of, e, correlation_id)
