"""
Shared fixtures.

Everything runs against the in-memory storage and gateways; no test
talks to Google Sheets. Coroutines are driven with run_async rather
than an asyncio pytest plugin.
"""

import asyncio
import re
from datetime import date
from decimal import Decimal

import pytest

from finance_scheduler.audit import AuditLogger
from finance_scheduler.config import SchedulerSettings
from finance_scheduler.engine import ExecutionEngine
from finance_scheduler.models.schedule import (
    MonthlyRecurrence,
    ScheduleDefinition,
    ScheduledTransaction,
    TransactionType,
)
from finance_scheduler.orchestrator import ScheduleService
from finance_scheduler.services.gateways import (
    InMemoryAccountGateway,
    InMemoryNotificationGateway,
)
from finance_scheduler.services.storage import (
    InMemoryAuditStorage,
    InMemoryScheduleStorage,
    InMemoryTransactionStorage,
)


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_schedule(**overrides) -> ScheduledTransaction:
    """A monthly 50.00 expense due on 2024-01-15, overridable per test."""
    data = dict(
        account_id="main",
        amount=Decimal("50.00"),
        type=TransactionType.EXPENSE,
        description="Gym membership",
        recurrence=MonthlyRecurrence(day_of_month=15),
        start_date=date(2024, 1, 1),
        next_execution_date=date(2024, 1, 15),
        auto_execute=True,
    )
    data.update(overrides)
    return ScheduledTransaction(**data)


class FakeWorksheet:
    """A list of rows answering the few gspread.Worksheet calls the backends make."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name, values, value_input_option=None):
        match = re.match(r"([A-Z])(\d+)", range_name)
        col = ord(match.group(1)) - ord("A")
        row = self.rows[int(match.group(2)) - 1]
        for offset, value in enumerate(values[0]):
            while len(row) <= col + offset:
                row.append("")
            row[col + offset] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


def make_definition(**overrides) -> ScheduleDefinition:
    data = dict(
        account_id="main",
        amount=Decimal("50.00"),
        type=TransactionType.EXPENSE,
        description="Gym membership",
        frequency="monthly",
        day_of_month=15,
        start_date=date(2024, 1, 1),
        auto_execute=True,
    )
    data.update(overrides)
    return ScheduleDefinition(**data)


@pytest.fixture
def scheduler_settings():
    return SchedulerSettings(
        upcoming_horizon_days=3,
        gateway_timeout_seconds=1.0,
        max_concurrency=4,
        notification_retry_attempts=3,
        notification_retry_wait_seconds=0,
        default_page_size=100,
    )


@pytest.fixture
def schedule_storage():
    return InMemoryScheduleStorage()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def accounts():
    return InMemoryAccountGateway(balances={"main": Decimal("1000.00")})


@pytest.fixture
def notifications():
    return InMemoryNotificationGateway()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def engine(
    schedule_storage,
    transaction_storage,
    accounts,
    notifications,
    audit_logger,
    scheduler_settings,
):
    return ExecutionEngine(
        schedule_storage=schedule_storage,
        transaction_storage=transaction_storage,
        account_gateway=accounts,
        notification_gateway=notifications,
        audit_logger=audit_logger,
        settings=scheduler_settings,
    )


@pytest.fixture
def service(
    schedule_storage,
    transaction_storage,
    accounts,
    notifications,
    audit_logger,
    engine,
):
    return ScheduleService(
        schedule_storage=schedule_storage,
        transaction_storage=transaction_storage,
        account_gateway=accounts,
        notification_gateway=notifications,
        audit_logger=audit_logger,
        engine=engine,
    )
