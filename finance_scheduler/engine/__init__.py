"""Execution engine package."""

from finance_scheduler.engine.executor import (
    ExecutionEngine,
    InvalidStatusTransitionError,
    ScheduleNotActiveError,
    advance_schedule,
    ensure_transition,
    idempotency_key,
)
from finance_scheduler.engine.locks import KeyedLock

__all__ = [
    "ExecutionEngine",
    "InvalidStatusTransitionError",
    "KeyedLock",
    "ScheduleNotActiveError",
    "advance_schedule",
    "ensure_transition",
    "idempotency_key",
]
