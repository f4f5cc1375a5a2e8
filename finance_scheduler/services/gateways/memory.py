"""
In-Memory Gateways

Fakes for the account ledger and notification center, used by the
tests and by the "memory" storage backend.
"""

import asyncio
from decimal import Decimal
from typing import Optional

from finance_scheduler.models.notification import NotificationEvent
from finance_scheduler.services.gateways.interface import (
    AccountBalanceGateway,
    AccountNotFoundError,
    GatewayError,
    InsufficientFundsError,
    NotificationGateway,
    RecentKeys,
)


class InMemoryAccountGateway(AccountBalanceGateway):
    """
    Account balances held in a dict.

    Every account may carry a minimum balance (0 by default, negative for
    an overdraft allowance). A debit fails when it would take the
    balance below that minimum.
    """

    def __init__(
        self,
        balances: Optional[dict[str, Decimal]] = None,
        minimum_balances: Optional[dict[str, Decimal]] = None,
        max_remembered_keys: int = 10_000,
    ):
        self._balances: dict[str, Decimal] = {
            account_id: Decimal(balance) for account_id, balance in (balances or {}).items()
        }
        self._minimums: dict[str, Decimal] = {
            account_id: Decimal(value) for account_id, value in (minimum_balances or {}).items()
        }
        self._applied_keys = RecentKeys(max_remembered_keys)
        self._lock = asyncio.Lock()
        self.apply_calls: list[tuple[str, Decimal, Optional[str]]] = []

    def open_account(
        self,
        account_id: str,
        balance: Decimal = Decimal("0"),
        minimum_balance: Decimal = Decimal("0"),
    ) -> None:
        self._balances[account_id] = Decimal(balance)
        self._minimums[account_id] = Decimal(minimum_balance)

    def balance_of(self, account_id: str) -> Decimal:
        """Synchronous read for tests and the dashboard."""
        return self._balances[account_id]

    async def get_balance(self, account_id: str) -> Decimal:
        if account_id not in self._balances:
            raise AccountNotFoundError(account_id)
        return self._balances[account_id]

    async def apply_delta(
        self,
        account_id: str,
        delta: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> Decimal:
        async with self._lock:
            self.apply_calls.append((account_id, delta, idempotency_key))
            if account_id not in self._balances:
                raise AccountNotFoundError(account_id)

            if idempotency_key is not None and idempotency_key in self._applied_keys:
                return self._balances[account_id]

            current = self._balances[account_id]
            new_balance = current + delta
            if delta < 0 and new_balance < self._minimums.get(account_id, Decimal("0")):
                raise InsufficientFundsError(account_id, -delta, available=current)

            self._balances[account_id] = new_balance
            if idempotency_key is not None:
                self._applied_keys.add(idempotency_key)
            return new_balance


class InMemoryNotificationGateway(NotificationGateway):
    """Records every delivered notification; can be told to fail."""

    def __init__(self, fail_times: int = 0):
        self.events: list[NotificationEvent] = []
        self._fail_times = fail_times
        self.attempts = 0

    async def notify(self, event: NotificationEvent) -> None:
        self.attempts += 1
        if self._fail_times > 0:
            self._fail_times -= 1
            raise GatewayError("Notification center unavailable")
        self.events.append(event)
