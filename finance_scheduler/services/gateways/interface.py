"""
Gateway Interfaces

The engine talks to two collaborators it does not own:
- the account ledger, to read and change balances
- the notification center, to tell the user what happened

DESIGN DECISION: apply_delta is the only balance-changing call, and it
is atomic on the collaborator side: the balance check and the write
happen together, so two schedules debiting the same account can never
both pass a stale check.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from decimal import Decimal
from typing import Optional

from finance_scheduler.models.notification import NotificationEvent


class GatewayError(Exception):
    """Base exception for collaborator failures. Retryable on the next run."""
    pass


class GatewayTimeoutError(GatewayError):
    """A gateway call did not answer within the configured timeout."""

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds}s")


class AccountNotFoundError(GatewayError):
    """The referenced account does not exist in the ledger."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class InsufficientFundsError(Exception):
    """
    The account cannot cover a debit.

    Not a GatewayError: this is an expected business outcome, and the
    engine handles it by blocking the schedule rather than retrying.
    """

    def __init__(
        self,
        account_id: str,
        requested: Decimal,
        available: Optional[Decimal] = None,
    ):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        message = f"Insufficient funds on {account_id}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)


class RecentKeys:
    """
    Idempotency keys a ledger has already applied, oldest forgotten first.

    A key only has to outlive the retries of its own occurrence (the next
    run or two), so a few thousand keys cover every schedule a household
    has many times over.
    """

    def __init__(self, max_size: int = 10_000):
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._max_size = max_size

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: str) -> None:
        self._keys[key] = None
        self._keys.move_to_end(key)
        while len(self._keys) > self._max_size:
            self._keys.popitem(last=False)


class AccountBalanceGateway(ABC):
    """
    Abstract interface for the account ledger.
    """

    @abstractmethod
    async def get_balance(self, account_id: str) -> Decimal:
        """
        Read the current balance of an account.

        Raises:
            AccountNotFoundError: If the account doesn't exist
            GatewayError: If the ledger cannot be reached
        """
        pass

    @abstractmethod
    async def apply_delta(
        self,
        account_id: str,
        delta: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> Decimal:
        """
        Atomically add delta to an account balance.

        A negative delta is a debit and fails when the resulting balance
        would drop below what the account allows. Repeating a call with an
        idempotency key that was already applied changes nothing and
        returns the current balance.

        Args:
            account_id: Account to change
            delta: Signed amount (negative for expenses)
            idempotency_key: Deduplication key, "<schedule id>:<occurrence date>"

        Returns:
            The balance after the change

        Raises:
            InsufficientFundsError: If a debit cannot be covered
            AccountNotFoundError: If the account doesn't exist
            GatewayError: If the ledger cannot be reached
        """
        pass


class NotificationGateway(ABC):
    """
    Abstract interface for the user notification center.

    Delivery is fire-and-forget from the engine's point of view: a
    failed notification is logged but never undoes an execution.
    """

    @abstractmethod
    async def notify(self, event: NotificationEvent) -> None:
        """
        Deliver a notification.

        Raises:
            GatewayError: If delivery fails
        """
        pass
