"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is kept as the persistent backend because:
1. Non-technical users can see and fix their schedules directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a household has dozens of schedules)
- No transactions: a schedule update is a single row write, and the
  materialized transaction is written before the schedule advances
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the engine never
knows which backend it is talking to.
"""

import asyncio
import json
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from finance_scheduler.config import GoogleSheetsSettings, get_settings
from finance_scheduler.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_scheduler.models.schedule import (
    Frequency,
    MaterializedTransaction,
    ScheduledTransaction,
    ScheduleStatus,
    TransactionType,
)
from finance_scheduler.recurrence import build_recurrence
from finance_scheduler.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    ScheduleStorageInterface,
    StorageError,
    TransactionStorageInterface,
    matches_filters,
    schedule_sort_key,
)


logger = structlog.get_logger("finance_scheduler.storage")


# Column mappings for ScheduledTransactions sheet
SCHEDULE_COLUMNS = [
    "id",
    "account_id",
    "category_id",
    "base_transaction_id",
    "amount",
    "type",
    "description",
    "payee",
    "tags_json",
    "frequency",
    "day_of_week",
    "day_of_month",
    "start_date",
    "end_date",
    "next_execution_date",
    "last_execution_date",
    "auto_execute",
    "status",
    "insufficient_funds",
    "insufficient_funds_since",
    "created_at",
    "updated_at",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "scheduled_transaction_id",
    "account_id",
    "category_id",
    "amount",
    "type",
    "description",
    "payee",
    "tags_json",
    "transaction_date",
    "balance_after",
    "created_at",
]

# Column mappings for Accounts sheet (read by the account gateway)
ACCOUNT_COLUMNS = [
    "account_id",
    "name",
    "balance",
    "minimum_balance",
    "updated_at",
]

# Column mappings for Notifications sheet
NOTIFICATION_COLUMNS = [
    "event_id",
    "created_at",
    "type",
    "severity",
    "scheduled_transaction_id",
    "account_id",
    "amount",
    "occurrence_date",
    "title",
    "message",
    "transaction_id",
    "balance",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and empty values."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _optional_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates every worksheet the
    scheduler uses, header row included.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        # Worker threads may ask for the same worksheet at once
        self._lock = threading.Lock()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
                self._client.set_timeout(self._settings.request_timeout_seconds)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        with self._lock:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
        return sheet

    def get_schedules_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.schedules_sheet_name, SCHEDULE_COLUMNS)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=5000,
        )

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=100)

    def get_notifications_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.notifications_sheet_name,
            NOTIFICATION_COLUMNS,
            rows=5000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


# =============================================================================
# ROW CONVERSION
# =============================================================================

def schedule_to_row(schedule: ScheduledTransaction) -> list:
    """Convert a ScheduledTransaction to a spreadsheet row."""
    return [
        str(schedule.id),
        schedule.account_id,
        schedule.category_id or "",
        schedule.base_transaction_id or "",
        str(schedule.amount),
        schedule.type.value,
        schedule.description or "",
        schedule.payee or "",
        json.dumps(sorted(schedule.tags)),
        schedule.frequency.value,
        "" if schedule.day_of_week is None else str(schedule.day_of_week),
        "" if schedule.day_of_month is None else str(schedule.day_of_month),
        schedule.start_date.isoformat(),
        _iso(schedule.end_date),
        schedule.next_execution_date.isoformat(),
        _iso(schedule.last_execution_date),
        str(schedule.auto_execute),
        schedule.status.value,
        str(schedule.insufficient_funds),
        _iso(schedule.insufficient_funds_since),
        schedule.created_at.isoformat(),
        schedule.updated_at.isoformat(),
    ]


def row_to_schedule(row: list) -> ScheduledTransaction:
    """Convert a spreadsheet row to a ScheduledTransaction."""
    recurrence = build_recurrence(
        cell(row, 9),
        day_of_week=_optional_int(cell(row, 10)),
        day_of_month=_optional_int(cell(row, 11)),
    )
    tags_json = cell(row, 8)
    return ScheduledTransaction(
        id=UUID(cell(row, 0)),
        account_id=cell(row, 1),
        category_id=cell(row, 2) or None,
        base_transaction_id=cell(row, 3) or None,
        amount=Decimal(cell(row, 4)),
        type=TransactionType(cell(row, 5)),
        description=cell(row, 6) or None,
        payee=cell(row, 7) or None,
        tags=set(json.loads(tags_json)) if tags_json else set(),
        recurrence=recurrence,
        start_date=date.fromisoformat(cell(row, 12)),
        end_date=_optional_date(cell(row, 13)),
        next_execution_date=date.fromisoformat(cell(row, 14)),
        last_execution_date=_optional_date(cell(row, 15)),
        auto_execute=cell(row, 16).lower() == "true",
        status=ScheduleStatus(cell(row, 17)),
        insufficient_funds=cell(row, 18).lower() == "true",
        insufficient_funds_since=_optional_date(cell(row, 19)),
        created_at=datetime.fromisoformat(cell(row, 20)),
        updated_at=datetime.fromisoformat(cell(row, 21)),
    )


def transaction_to_row(transaction: MaterializedTransaction) -> list:
    return [
        str(transaction.id),
        str(transaction.scheduled_transaction_id),
        transaction.account_id,
        transaction.category_id or "",
        str(transaction.amount),
        transaction.type.value,
        transaction.description or "",
        transaction.payee or "",
        json.dumps(sorted(transaction.tags)),
        transaction.transaction_date.isoformat(),
        "" if transaction.balance_after is None else str(transaction.balance_after),
        transaction.created_at.isoformat(),
    ]


def row_to_transaction(row: list) -> MaterializedTransaction:
    tags_json = cell(row, 8)
    return MaterializedTransaction(
        id=UUID(cell(row, 0)),
        scheduled_transaction_id=UUID(cell(row, 1)),
        account_id=cell(row, 2),
        category_id=cell(row, 3) or None,
        amount=Decimal(cell(row, 4)),
        type=TransactionType(cell(row, 5)),
        description=cell(row, 6) or None,
        payee=cell(row, 7) or None,
        tags=set(json.loads(tags_json)) if tags_json else set(),
        transaction_date=date.fromisoformat(cell(row, 9)),
        balance_after=Decimal(cell(row, 10)) if cell(row, 10) else None,
        created_at=datetime.fromisoformat(cell(row, 11)),
    )


def row_to_event(row: list) -> AuditEvent:
    """Convert a spreadsheet row to an AuditEvent."""
    return AuditEvent(
        event_id=UUID(cell(row, 0)),
        timestamp=datetime.fromisoformat(cell(row, 1)),
        event_type=AuditEventType(cell(row, 2)),
        severity=AuditSeverity(cell(row, 3)),
        entity_type=cell(row, 4) or None,
        entity_id=UUID(cell(row, 5)) if cell(row, 5) else None,
        correlation_id=UUID(cell(row, 6)) if cell(row, 6) else None,
        description=cell(row, 7),
        details=json.loads(cell(row, 8)) if cell(row, 8) else {},
        error_message=cell(row, 9) or None,
        is_user_action=cell(row, 10).lower() == "true",
    )




# =============================================================================
# STORAGE CLASSES
# =============================================================================
#
# gspread blocks, so each async method hands its sheet work to a worker
# thread with asyncio.to_thread and the event loop stays responsive.

class GoogleSheetsScheduleStorage(ScheduleStorageInterface):
    """
    Google Sheets implementation of schedule storage.

    One schedule per row; the recurrence is flattened into the
    frequency/day_of_week/day_of_month columns.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _load_all(self) -> list[ScheduledTransaction]:
        sheet = self._client.get_schedules_sheet()
        schedules = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:
                continue
            try:
                schedules.append(row_to_schedule(row))
            except (ValueError, KeyError) as e:
                logger.warning("schedule_row_skipped", schedule_id=row[0], error=str(e))
        return schedules

    def _find_row(self, sheet: gspread.Worksheet, schedule_id: UUID) -> Optional[int]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # row 1 is header
            if row and row[0] == str(schedule_id):
                return idx
        return None

    def _append(self, schedule: ScheduledTransaction) -> None:
        sheet = self._client.get_schedules_sheet()
        if self._find_row(sheet, schedule.id) is not None:
            raise DuplicateError(f"Schedule already exists: {schedule.id}")
        sheet.append_row(schedule_to_row(schedule), value_input_option="RAW")

    def _rewrite(self, schedule: ScheduledTransaction) -> None:
        sheet = self._client.get_schedules_sheet()
        idx = self._find_row(sheet, schedule.id)
        if idx is None:
            raise NotFoundError(f"Schedule not found: {schedule.id}")
        sheet.update(
            range_name=f"A{idx}",
            values=[schedule_to_row(schedule)],
            value_input_option="RAW",
        )

    def _read(self, schedule_id: UUID) -> Optional[ScheduledTransaction]:
        sheet = self._client.get_schedules_sheet()
        for row in sheet.get_all_values()[1:]:
            if row and row[0] == str(schedule_id):
                return row_to_schedule(row)
        return None

    def _remove(self, schedule_id: UUID) -> bool:
        sheet = self._client.get_schedules_sheet()
        idx = self._find_row(sheet, schedule_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    @retry(
        retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_schedule(self, schedule: ScheduledTransaction) -> bool:
        try:
            await asyncio.to_thread(self._append, schedule)
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save schedule: {e}")

    async def get_schedule(self, schedule_id: UUID) -> Optional[ScheduledTransaction]:
        try:
            return await asyncio.to_thread(self._read, schedule_id)
        except Exception as e:
            raise StorageError(f"Failed to get schedule: {e}")

    @retry(
        retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update_schedule(self, schedule: ScheduledTransaction) -> bool:
        """Rewrite the whole row in one range update."""
        try:
            await asyncio.to_thread(self._rewrite, schedule)
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update schedule: {e}")

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        try:
            return await asyncio.to_thread(self._remove, schedule_id)
        except Exception as e:
            raise StorageError(f"Failed to delete schedule: {e}")

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
        try:
            loaded = await asyncio.to_thread(self._load_all)
        except Exception as e:
            raise StorageError(f"Failed to list schedules: {e}")

        schedules = [
            s for s in loaded
            if matches_filters(
                s,
                status=status,
                frequency=frequency,
                account_id=account_id,
                category_id=category_id,
                next_from=next_from,
                next_to=next_to,
                insufficient_funds=insufficient_funds,
            )
        ]
        schedules.sort(key=schedule_sort_key)
        return schedules[offset:offset + limit]

    async def count_schedules(
        self,
        status: Optional[ScheduleStatus] = None,
        frequency: Optional[Frequency] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> int:
        try:
            loaded = await asyncio.to_thread(self._load_all)
        except Exception as e:
            raise StorageError(f"Failed to count schedules: {e}")

        return sum(
            1 for s in loaded
            if matches_filters(
                s,
                status=status,
                frequency=frequency,
                account_id=account_id,
                category_id=category_id,
            )
        )


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    Transaction IDs are derived from (schedule, occurrence), so the
    existence check before append is what makes a retried run safe.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append(self, transaction: MaterializedTransaction) -> bool:
        sheet = self._client.get_transactions_sheet()
        existing_ids = sheet.col_values(1)[1:]
        if str(transaction.id) in existing_ids:
            return False
        sheet.append_row(transaction_to_row(transaction), value_input_option="RAW")
        return True

    def _rows(self) -> list[list]:
        sheet = self._client.get_transactions_sheet()
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_transaction(self, transaction: MaterializedTransaction) -> bool:
        try:
            return await asyncio.to_thread(self._append, transaction)
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: UUID) -> Optional[MaterializedTransaction]:
        try:
            rows = await asyncio.to_thread(self._rows)
            for row in rows:
                if row[0] == str(transaction_id):
                    return row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def list_transactions(
        self,
        scheduled_transaction_id: Optional[UUID] = None,
        account_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[MaterializedTransaction]:
        try:
            transactions = []
            for row in await asyncio.to_thread(self._rows):
                if scheduled_transaction_id and cell(row, 1) != str(scheduled_transaction_id):
                    continue
                if account_id and cell(row, 2) != account_id:
                    continue
                transactions.append(row_to_transaction(row))
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions[:limit]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append(self, event: AuditEvent) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            await asyncio.to_thread(self._append, event)
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _read_matching(self, predicate) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0] and predicate(row):
                try:
                    events.append(row_to_event(row))
                except (ValueError, KeyError) as e:
                    logger.warning("audit_row_skipped", event_id=row[0], error=str(e))
        return events

    async def _matching(self, predicate) -> list[AuditEvent]:
        try:
            return await asyncio.to_thread(self._read_matching, predicate)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = await self._matching(lambda row: cell(row, 6) == str(correlation_id))
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = await self._matching(
            lambda row: cell(row, 4) == entity_type and cell(row, 5) == str(entity_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._matching(lambda row: True)
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
