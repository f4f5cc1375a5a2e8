"""
In-Memory Storage Implementation

Used by the test-suite and for local runs without a spreadsheet.
Records are deep-copied on the way in and out so callers can never
mutate stored state behind the store's back.

The schedule store keeps a (status, next_execution_date) index so the
due-selection query only touches active schedules.
"""

import asyncio
from bisect import insort
from datetime import date
from typing import Optional
from uuid import UUID

from finance_scheduler.models.schedule import (
    Frequency,
    MaterializedTransaction,
    ScheduledTransaction,
    ScheduleStatus,
)
from finance_scheduler.models.audit import AuditEvent
from finance_scheduler.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    ScheduleStorageInterface,
    TransactionStorageInterface,
    matches_filters,
    schedule_sort_key,
)


class InMemoryScheduleStorage(ScheduleStorageInterface):
    """Dict-backed schedule store with a per-status date index."""

    def __init__(self, schedules: Optional[list[ScheduledTransaction]] = None):
        self._schedules: dict[UUID, ScheduledTransaction] = {}
        self._index: dict[ScheduleStatus, list[tuple[date, UUID]]] = {
            status: [] for status in ScheduleStatus
        }
        self._lock = asyncio.Lock()
        for schedule in schedules or []:
            self._put(schedule)

    def _put(self, schedule: ScheduledTransaction) -> None:
        self._schedules[schedule.id] = schedule.model_copy(deep=True)
        insort(self._index[schedule.status], (schedule.next_execution_date, schedule.id))

    def _drop(self, schedule_id: UUID) -> None:
        existing = self._schedules.pop(schedule_id)
        self._index[existing.status].remove((existing.next_execution_date, existing.id))

    async def save_schedule(self, schedule: ScheduledTransaction) -> bool:
        async with self._lock:
            if schedule.id in self._schedules:
                raise DuplicateError(f"Schedule already exists: {schedule.id}")
            self._put(schedule)
            return True

    async def get_schedule(self, schedule_id: UUID) -> Optional[ScheduledTransaction]:
        schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule else None

    async def update_schedule(self, schedule: ScheduledTransaction) -> bool:
        async with self._lock:
            if schedule.id not in self._schedules:
                raise NotFoundError(f"Schedule not found: {schedule.id}")
            self._drop(schedule.id)
            self._put(schedule)
            return True

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        async with self._lock:
            if schedule_id not in self._schedules:
                return False
            self._drop(schedule_id)
            return True

    def _candidates(self, status: Optional[ScheduleStatus]) -> list[ScheduledTransaction]:
        if status is None:
            return sorted(self._schedules.values(), key=schedule_sort_key)
        return [self._schedules[schedule_id] for _, schedule_id in self._index[status]]

    async def list_schedules(
        self,
        status: Optional[ScheduleStatus] = None,
        frequency: Optional[Frequency] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        next_from: Optional[date] = None,
        next_to: Optional[date] = None,
        insufficient_funds: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ScheduledTransaction]:
        results = []
        for schedule in self._candidates(status):
            # The index is date-ordered, nothing later can match
            if status is not None and next_to is not None and schedule.next_execution_date > next_to:
                break
            if matches_filters(
                schedule,
                frequency=frequency,
                account_id=account_id,
                category_id=category_id,
                next_from=next_from,
                next_to=next_to,
                insufficient_funds=insufficient_funds,
            ):
                results.append(schedule.model_copy(deep=True))
        return results[offset:offset + limit]

    async def count_schedules(
        self,
        status: Optional[ScheduleStatus] = None,
        frequency: Optional[Frequency] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> int:
        return sum(
            1
            for schedule in self._candidates(status)
            if matches_filters(
                schedule,
                frequency=frequency,
                account_id=account_id,
                category_id=category_id,
            )
        )


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Dict-backed transaction store, idempotent on transaction ID."""

    def __init__(self):
        self._transactions: dict[UUID, MaterializedTransaction] = {}

    async def save_transaction(self, transaction: MaterializedTransaction) -> bool:
        if transaction.id in self._transactions:
            return False
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def get_transaction(self, transaction_id: UUID) -> Optional[MaterializedTransaction]:
        transaction = self._transactions.get(transaction_id)
        return transaction.model_copy(deep=True) if transaction else None

    async def list_transactions(
        self,
        scheduled_transaction_id: Optional[UUID] = None,
        account_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[MaterializedTransaction]:
        results = [
            t.model_copy(deep=True)
            for t in self._transactions.values()
            if (scheduled_transaction_id is None or t.scheduled_transaction_id == scheduled_transaction_id)
            and (account_id is None or t.account_id == account_id)
        ]
        results.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return results[:limit]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
