"""
Notification Models

Events pushed to the user-facing notification center whenever the
engine executes a schedule, gets blocked by insufficient funds, fails
to reach the ledger, or finishes a schedule for good.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_scheduler.models.schedule import (
    MaterializedTransaction,
    ScheduledTransaction,
    utcnow,
)


class NotificationType(str, Enum):
    EXECUTED = "executed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SCHEDULE_COMPLETED = "schedule_completed"
    EXECUTION_FAILED = "execution_failed"


class NotificationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class NotificationEvent(BaseModel):
    """A single notification about a schedule."""

    event_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utcnow)
    type: NotificationType
    severity: NotificationSeverity = NotificationSeverity.INFO

    scheduled_transaction_id: UUID
    account_id: str
    amount: Decimal
    occurrence_date: date

    title: str = Field(..., max_length=200)
    message: str = Field(..., max_length=1000)

    transaction_id: Optional[UUID] = None
    balance: Optional[Decimal] = Field(
        default=None,
        description="Account balance when the event happened, if known"
    )

    def to_sheets_row(self) -> list:
        return [
            str(self.event_id),
            self.created_at.isoformat(),
            self.type.value,
            self.severity.value,
            str(self.scheduled_transaction_id),
            self.account_id,
            str(self.amount),
            self.occurrence_date.isoformat(),
            self.title,
            self.message,
            str(self.transaction_id) if self.transaction_id else "",
            str(self.balance) if self.balance is not None else "",
        ]


def _label(schedule: ScheduledTransaction) -> str:
    return schedule.description or schedule.payee or "Scheduled transaction"


class NotificationEventBuilder:
    """
    Helper class to build notification events.

    Usage:
        event = NotificationEventBuilder.executed(schedule, transaction)
        event = NotificationEventBuilder.insufficient_funds(schedule, balance)
    """

    @staticmethod
    def executed(
        schedule: ScheduledTransaction,
        transaction: MaterializedTransaction,
    ) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.EXECUTED,
            scheduled_transaction_id=schedule.id,
            account_id=schedule.account_id,
            amount=schedule.amount,
            occurrence_date=transaction.transaction_date,
            title=f"{_label(schedule)} executed",
            message=(
                f"{schedule.type.value.capitalize()} of {schedule.amount} "
                f"for {transaction.transaction_date.isoformat()} was recorded"
            ),
            transaction_id=transaction.id,
            balance=transaction.balance_after,
        )

    @staticmethod
    def insufficient_funds(
        schedule: ScheduledTransaction,
        balance: Optional[Decimal] = None,
    ) -> NotificationEvent:
        message = (
            f"Not enough funds to pay {schedule.amount} due on "
            f"{schedule.next_execution_date.isoformat()}"
        )
        if balance is not None:
            message += f" (current balance: {balance})"
        return NotificationEvent(
            type=NotificationType.INSUFFICIENT_FUNDS,
            severity=NotificationSeverity.DANGER,
            scheduled_transaction_id=schedule.id,
            account_id=schedule.account_id,
            amount=schedule.amount,
            occurrence_date=schedule.next_execution_date,
            title=f"{_label(schedule)}: insufficient funds",
            message=message,
            balance=balance,
        )

    @staticmethod
    def schedule_completed(
        schedule: ScheduledTransaction,
        last_occurrence: date,
    ) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.SCHEDULE_COMPLETED,
            severity=NotificationSeverity.INFO,
            scheduled_transaction_id=schedule.id,
            account_id=schedule.account_id,
            amount=schedule.amount,
            occurrence_date=last_occurrence,
            title=f"{_label(schedule)} completed",
            message="No further occurrences fit before the schedule's end date",
        )

    @staticmethod
    def execution_failed(
        schedule: ScheduledTransaction,
        error_message: str,
    ) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationType.EXECUTION_FAILED,
            severity=NotificationSeverity.WARNING,
            scheduled_transaction_id=schedule.id,
            account_id=schedule.account_id,
            amount=schedule.amount,
            occurrence_date=schedule.next_execution_date,
            title=f"{_label(schedule)} could not be executed",
            message=(
                f"Payment due on {schedule.next_execution_date.isoformat()} will be "
                f"retried on the next run ({error_message[:300]})"
            ),
        )
