"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document store later
2. Use in-memory storage for testing
3. Keep the engine decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the recurrence engine needs.
"""

from abc import ABC, abstractmethod
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


class ScheduleStorageInterface(ABC):
    """
    Abstract interface for scheduled transaction storage.

    Implementations must be able to answer "active and due by X"
    without scanning unrelated schedules more than necessary.
    """

    @abstractmethod
    async def save_schedule(self, schedule: ScheduledTransaction) -> bool:
        """
        Insert a new schedule.

        Raises:
            DuplicateError: If a schedule with the same ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_schedule(self, schedule_id: UUID) -> Optional[ScheduledTransaction]:
        """
        Retrieve a schedule by its ID.

        Returns:
            The schedule if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_schedule(self, schedule: ScheduledTransaction) -> bool:
        """
        Replace an existing schedule in a single write.

        Raises:
            NotFoundError: If schedule doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_schedule(self, schedule_id: UUID) -> bool:
        """
        Hard-delete a schedule.

        Returns:
            True if a schedule was deleted, False if it did not exist
        """
        pass

    @abstractmethod
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
        """
        List schedules with optional filters.

        Results are ordered by next_execution_date, then id.

        Args:
            status: Filter by status
            frequency: Filter by frequency
            account_id: Filter by account
            category_id: Filter by category
            next_from: next_execution_date on or after this date
            next_to: next_execution_date on or before this date
            insufficient_funds: Filter by the blocked flag
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def count_schedules(
        self,
        status: Optional[ScheduleStatus] = None,
        frequency: Optional[Frequency] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> int:
        """Count schedules matching the filters."""
        pass

    async def list_due(self, as_of: date, limit: int = 10000) -> list[ScheduledTransaction]:
        """Active schedules with next_execution_date on or before as_of."""
        return await self.list_schedules(
            status=ScheduleStatus.ACTIVE,
            next_to=as_of,
            limit=limit,
        )


class TransactionStorageInterface(ABC):
    """
    Abstract interface for materialized transactions.

    Saving is idempotent on the transaction ID: writing the same
    occurrence twice leaves a single record.
    """

    @abstractmethod
    async def save_transaction(self, transaction: MaterializedTransaction) -> bool:
        """
        Save a transaction.

        Returns:
            True if written, False if a record with this ID already existed
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[MaterializedTransaction]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        scheduled_transaction_id: Optional[UUID] = None,
        account_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[MaterializedTransaction]:
        """List transactions, newest occurrence first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one run, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


def matches_filters(
    schedule: ScheduledTransaction,
    status: Optional[ScheduleStatus] = None,
    frequency: Optional[Frequency] = None,
    account_id: Optional[str] = None,
    category_id: Optional[str] = None,
    next_from: Optional[date] = None,
    next_to: Optional[date] = None,
    insufficient_funds: Optional[bool] = None,
) -> bool:
    """Shared filter predicate for backends that filter in Python."""
    if status is not None and schedule.status != status:
        return False
    if frequency is not None and schedule.frequency != frequency:
        return False
    if account_id is not None and schedule.account_id != account_id:
        return False
    if category_id is not None and schedule.category_id != category_id:
        return False
    if next_from is not None and schedule.next_execution_date < next_from:
        return False
    if next_to is not None and schedule.next_execution_date > next_to:
        return False
    if insufficient_funds is not None and schedule.insufficient_funds != insufficient_funds:
        return False
    return True


def schedule_sort_key(schedule: ScheduledTransaction) -> tuple:
    return (schedule.next_execution_date, schedule.id)
