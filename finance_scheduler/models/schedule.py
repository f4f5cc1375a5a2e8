"""
Core Data Models for Finance Scheduler

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Make invalid recurrence shapes impossible to construct
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A recurrence is a tagged variant (one model per frequency)
rather than one model with optional anchor fields. A weekly schedule simply
has no day_of_month to get wrong.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, Literal, Optional, Union
from uuid import UUID, uuid4, uuid5

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often a schedule recurs."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class TransactionType(str, Enum):
    """Direction of the money movement."""
    INCOME = "income"    # credited to the account
    EXPENSE = "expense"  # debited from the account


class ScheduleStatus(str, Enum):
    """
    Schedule lifecycle status.

    Only ACTIVE schedules are ever picked up by the engine.
    COMPLETED and CANCELLED are terminal.
    """
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED)

    def can_transition_to(self, target: "ScheduleStatus") -> bool:
        """Check a status change against the schedule state machine."""
        return target in _STATUS_TRANSITIONS[self]


_STATUS_TRANSITIONS: dict[ScheduleStatus, frozenset[ScheduleStatus]] = {
    ScheduleStatus.ACTIVE: frozenset({
        ScheduleStatus.PAUSED,
        ScheduleStatus.CANCELLED,
        ScheduleStatus.COMPLETED,
    }),
    ScheduleStatus.PAUSED: frozenset({
        ScheduleStatus.ACTIVE,
        ScheduleStatus.CANCELLED,
    }),
    ScheduleStatus.COMPLETED: frozenset(),
    ScheduleStatus.CANCELLED: frozenset(),
}


class ExecutionOutcome(str, Enum):
    """Result of processing one due schedule."""
    EXECUTED = "executed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SKIPPED = "skipped"                            # no longer due/active when its turn came
    PENDING_CONFIRMATION = "pending_confirmation"  # manual schedule, waits for the user
    FAILED = "failed"                              # gateway/storage error, retried next run


# =============================================================================
# RECURRENCE - one model per frequency
# =============================================================================

class _RecurrenceBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class DailyRecurrence(_RecurrenceBase):
    """Every day."""
    frequency: Literal["daily"] = "daily"


class WeeklyRecurrence(_RecurrenceBase):
    """Every week on a fixed weekday."""
    frequency: Literal["weekly"] = "weekly"
    day_of_week: int = Field(
        ...,
        ge=0,
        le=6,
        description="Day of week, 0 = Sunday ... 6 = Saturday"
    )


class DayOfMonthRecurrence(_RecurrenceBase):
    """Every N months on a fixed day, clamped to the month's last day."""
    months_step: ClassVar[int] = 1

    day_of_month: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month; clamped for shorter months"
    )


class MonthlyRecurrence(DayOfMonthRecurrence):
    frequency: Literal["monthly"] = "monthly"
    months_step: ClassVar[int] = 1


class QuarterlyRecurrence(DayOfMonthRecurrence):
    frequency: Literal["quarterly"] = "quarterly"
    months_step: ClassVar[int] = 3


class YearlyRecurrence(DayOfMonthRecurrence):
    frequency: Literal["yearly"] = "yearly"
    months_step: ClassVar[int] = 12


Recurrence = Annotated[
    Union[
        DailyRecurrence,
        WeeklyRecurrence,
        MonthlyRecurrence,
        QuarterlyRecurrence,
        YearlyRecurrence,
    ],
    Field(discriminator="frequency"),
]


# =============================================================================
# CORE SCHEDULE MODEL
# =============================================================================

class ScheduledTransaction(BaseModel):
    """
    A recurring transaction definition plus its execution cursor.

    The engine owns next_execution_date, last_execution_date and the
    insufficient-funds flag; everything else comes from the user.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique schedule ID"
    )

    # References owned by other stores
    account_id: str = Field(
        ...,
        min_length=1,
        description="Account the payment is applied to"
    )
    category_id: Optional[str] = Field(
        default=None,
        description="Budget category of the materialized transactions"
    )
    base_transaction_id: Optional[str] = Field(
        default=None,
        description="One-off transaction this schedule was created from"
    )

    # What gets paid
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount per occurrence")
    ]
    type: TransactionType
    description: Optional[str] = Field(default=None, max_length=500)
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: set[str] = Field(default_factory=set)

    # When it gets paid
    recurrence: Recurrence
    start_date: date
    end_date: Optional[date] = None
    next_execution_date: date
    last_execution_date: Optional[date] = None
    auto_execute: bool = Field(
        default=False,
        description="Execute automatically when due; otherwise wait for confirmation"
    )

    # State
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    insufficient_funds: bool = Field(
        default=False,
        description="Blocked by an insufficient-funds outcome"
    )
    insufficient_funds_since: Optional[date] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def frequency(self) -> Frequency:
        return Frequency(self.recurrence.frequency)

    @property
    def day_of_week(self) -> Optional[int]:
        return getattr(self.recurrence, "day_of_week", None)

    @property
    def day_of_month(self) -> Optional[int]:
        return getattr(self.recurrence, "day_of_month", None)

    @property
    def signed_amount(self) -> Decimal:
        """Balance delta of one occurrence (negative for expenses)."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount

    def is_due(self, as_of: date) -> bool:
        return (
            self.status == ScheduleStatus.ACTIVE
            and self.next_execution_date <= as_of
        )

    @model_validator(mode='after')
    def validate_dates(self) -> 'ScheduledTransaction':
        """Validate date relationships."""
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")

        if self.next_execution_date < self.start_date:
            raise ValueError("Next execution date cannot be before start date")

        # Completed schedules keep the overflowing date that ended them
        if (
            self.end_date
            and self.status in (ScheduleStatus.ACTIVE, ScheduleStatus.PAUSED)
            and self.next_execution_date > self.end_date
        ):
            raise ValueError("Next execution date cannot be after end date")

        return self


# =============================================================================
# INPUT MODELS (API payloads)
# =============================================================================

class ScheduleDefinition(BaseModel):
    """
    Payload for creating a schedule.

    Flat, API-shaped fields. Frequency and anchors are plain values here;
    they are turned into a Recurrence (or rejected) by the validator.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: TransactionType
    description: Optional[str] = Field(default=None, max_length=500)
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: set[str] = Field(default_factory=set)

    frequency: str
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None

    auto_execute: bool = False
    base_transaction_id: Optional[str] = None


class ScheduleUpdate(BaseModel):
    """
    Partial update payload.

    Only fields explicitly present in the payload are applied, so sending
    end_date=None removes the end date while omitting it keeps it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    type: Optional[TransactionType] = None
    description: Optional[str] = Field(default=None, max_length=500)
    payee: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[set[str]] = None

    frequency: Optional[str] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    auto_execute: Optional[bool] = None
    status: Optional[ScheduleStatus] = None

    def provided(self) -> dict:
        """Fields explicitly set by the caller."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class ScheduleFilters(BaseModel):
    """Filters accepted by the schedule listing."""
    status: Optional[ScheduleStatus] = None
    frequency: Optional[Frequency] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None


# =============================================================================
# EXECUTION MODELS
# =============================================================================

def materialized_transaction_id(schedule_id: UUID, occurrence_date: date) -> UUID:
    """
    Stable transaction ID for one occurrence of a schedule.

    Retrying the same occurrence always produces the same ID, so a
    transaction can never be written twice for it.
    """
    return uuid5(schedule_id, occurrence_date.isoformat())


class MaterializedTransaction(BaseModel):
    """A concrete transaction created by executing a schedule."""

    id: UUID
    scheduled_transaction_id: UUID
    account_id: str
    category_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    description: Optional[str] = None
    payee: Optional[str] = None
    tags: set[str] = Field(default_factory=set)
    transaction_date: date = Field(
        ...,
        description="The occurrence date this transaction settles"
    )
    balance_after: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def signed_amount(self) -> Decimal:
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount

    @classmethod
    def from_schedule(
        cls,
        schedule: ScheduledTransaction,
        balance_after: Optional[Decimal] = None,
    ) -> 'MaterializedTransaction':
        occurrence = schedule.next_execution_date
        return cls(
            id=materialized_transaction_id(schedule.id, occurrence),
            scheduled_transaction_id=schedule.id,
            account_id=schedule.account_id,
            category_id=schedule.category_id,
            amount=schedule.amount,
            type=schedule.type,
            description=schedule.description,
            payee=schedule.payee,
            tags=set(schedule.tags),
            transaction_date=occurrence,
            balance_after=balance_after,
        )


class ExecutionAttempt(BaseModel):
    """What happened to one due schedule in one run (not persisted)."""

    scheduled_transaction_id: UUID
    attempted_date: date = Field(
        ...,
        description="The as-of date of the run"
    )
    occurrence_date: date = Field(
        ...,
        description="The occurrence that was due"
    )
    outcome: ExecutionOutcome
    transaction_id: Optional[UUID] = None
    next_execution_date: Optional[date] = None
    status: Optional[ScheduleStatus] = None
    message: Optional[str] = None
    attempted_at: datetime = Field(default_factory=utcnow)


class RunSummary(BaseModel):
    """Outcome of one batch pass over due schedules."""

    run_id: UUID = Field(default_factory=uuid4)
    as_of: date
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    attempts: list[ExecutionAttempt] = Field(default_factory=list)
    aborted: int = Field(
        default=0,
        ge=0,
        description="Due schedules not started because the run was cancelled"
    )

    def _count(self, outcome: ExecutionOutcome) -> int:
        return sum(1 for a in self.attempts if a.outcome == outcome)

    @property
    def processed(self) -> int:
        return len(self.attempts)

    @property
    def executed(self) -> int:
        return self._count(ExecutionOutcome.EXECUTED)

    @property
    def pending_confirmation(self) -> int:
        return self._count(ExecutionOutcome.PENDING_CONFIRMATION)

    @property
    def insufficient_funds(self) -> int:
        return self._count(ExecutionOutcome.INSUFFICIENT_FUNDS)

    @property
    def failed(self) -> int:
        return self._count(ExecutionOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(ExecutionOutcome.SKIPPED)

    def counts(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "executed": self.executed,
            "pending_confirmation": self.pending_confirmation,
            "insufficient_funds": self.insufficient_funds,
            "failed": self.failed,
            "skipped": self.skipped,
            "aborted": self.aborted,
        }


# =============================================================================
# QUERY MODELS
# =============================================================================

class UpcomingTransactions(BaseModel):
    """
    Dashboard view of schedules that need attention soon.

    The two lists are disjoint: a blocked schedule only shows up as blocked.
    """

    generated_for: date
    horizon_days: int = Field(ge=0)
    upcoming_transactions: list[ScheduledTransaction] = Field(default_factory=list)
    insufficient_funds_transactions: list[ScheduledTransaction] = Field(default_factory=list)


class ScheduleList(BaseModel):
    """One page of a schedule listing."""

    items: list[ScheduledTransaction] = Field(default_factory=list)
    total_count: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.limit)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single non-blocking finding about a schedule definition."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'clamped_day', 'ignored_anchor')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="warning",
        pattern="^(warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a schedule definition.

    Blocking problems are raised as exceptions; what is left here is
    the parsed recurrence and anything worth showing the user.
    """

    recurrence: Recurrence
    first_execution_date: date
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]
