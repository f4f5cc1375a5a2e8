"""
Google Sheets Gateways

The Accounts sheet doubles as a tiny ledger and the Notifications sheet
as the user's inbox.

gspread is synchronous, so every sheet call runs in a worker thread
through asyncio.to_thread. That keeps the event loop free and lets the
engine's timeout give up on a slow call.

TRADEOFFS:
- Sheets has no compare-and-set, so apply_delta is serialized with a
  process-local lock. Two scheduler processes sharing one spreadsheet
  are not safe; run a single scheduler per spreadsheet.
- A timed-out apply_delta keeps running in its thread and may still land.
  The lock is a threading lock so that write stays atomic, and its
  idempotency key makes the next run's retry a no-op.
- Idempotency keys are remembered for the lifetime of the process only,
  and only the most recent ones (see RecentKeys). Across processes,
  duplicate protection comes from the deterministic transaction IDs
  checked by the engine.
"""

import asyncio
import threading
from decimal import Decimal, InvalidOperation
from typing import Optional

import gspread
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_scheduler.models.notification import NotificationEvent
from finance_scheduler.models.schedule import utcnow
from finance_scheduler.services.gateways.interface import (
    AccountBalanceGateway,
    AccountNotFoundError,
    GatewayError,
    InsufficientFundsError,
    NotificationGateway,
    RecentKeys,
)
from finance_scheduler.services.storage.google_sheets import GoogleSheetsClient, cell


class GoogleSheetsAccountGateway(AccountBalanceGateway):
    """
    Balances read from and written to the Accounts sheet.

    Columns: account_id, name, balance, minimum_balance, updated_at
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        max_remembered_keys: int = 10_000,
    ):
        self._client = client or GoogleSheetsClient()
        self._lock = threading.Lock()
        self._applied_keys = RecentKeys(max_remembered_keys)

    def _locate(self, account_id: str) -> tuple[int, list]:
        sheet = self._client.get_accounts_sheet()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # row 1 is header
            if row and row[0] == account_id:
                return idx, row
        raise AccountNotFoundError(account_id)

    @staticmethod
    def _amount(row: list, index: int) -> Decimal:
        try:
            return Decimal(cell(row, index, "0"))
        except InvalidOperation:
            raise GatewayError(f"Malformed amount in Accounts sheet: {cell(row, index)!r}")

    @retry(
        retry=retry_if_exception_type(gspread.exceptions.APIError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    def _read_row(self, account_id: str) -> tuple[int, list]:
        return self._locate(account_id)

    async def get_balance(self, account_id: str) -> Decimal:
        try:
            _, row = await asyncio.to_thread(self._read_row, account_id)
        except (AccountNotFoundError, GatewayError):
            raise
        except Exception as e:
            raise GatewayError(f"Failed to read balance: {e}")
        return self._amount(row, 2)

    def _apply(
        self,
        account_id: str,
        delta: Decimal,
        idempotency_key: Optional[str],
    ) -> Decimal:
        with self._lock:
            try:
                idx, row = self._locate(account_id)
                current = self._amount(row, 2)
                if idempotency_key is not None and idempotency_key in self._applied_keys:
                    return current

                minimum = self._amount(row, 3)
                new_balance = current + delta
                if delta < 0 and new_balance < minimum:
                    raise InsufficientFundsError(account_id, -delta, available=current)

                # Single write; not retried so a lost response can't double-apply
                sheet = self._client.get_accounts_sheet()
                sheet.update(
                    range_name=f"C{idx}:E{idx}",
                    values=[[str(new_balance), str(minimum), utcnow().isoformat()]],
                    value_input_option="RAW",
                )
            except (InsufficientFundsError, AccountNotFoundError, GatewayError):
                raise
            except Exception as e:
                raise GatewayError(f"Failed to apply balance change: {e}")

            if idempotency_key is not None:
                self._applied_keys.add(idempotency_key)
            return new_balance

    async def apply_delta(
        self,
        account_id: str,
        delta: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> Decimal:
        return await asyncio.to_thread(self._apply, account_id, delta, idempotency_key)


class GoogleSheetsNotificationGateway(NotificationGateway):
    """Appends notifications to the Notifications sheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append(self, event: NotificationEvent) -> None:
        sheet = self._client.get_notifications_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    async def notify(self, event: NotificationEvent) -> None:
        try:
            await asyncio.to_thread(self._append, event)
        except Exception as e:
            raise GatewayError(f"Failed to deliver notification: {e}")
