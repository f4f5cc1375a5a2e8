"""
Gateway Services Package

Ports to the collaborators the engine does not own: the account
ledger and the notification center.
"""

from finance_scheduler.services.gateways.interface import (
    AccountBalanceGateway,
    AccountNotFoundError,
    GatewayError,
    GatewayTimeoutError,
    InsufficientFundsError,
    NotificationGateway,
    RecentKeys,
)
from finance_scheduler.services.gateways.memory import (
    InMemoryAccountGateway,
    InMemoryNotificationGateway,
)
from finance_scheduler.services.gateways.google_sheets import (
    GoogleSheetsAccountGateway,
    GoogleSheetsNotificationGateway,
)

__all__ = [
    # Interfaces
    "AccountBalanceGateway",
    "NotificationGateway",
    "RecentKeys",
    # Exceptions
    "AccountNotFoundError",
    "GatewayError",
    "GatewayTimeoutError",
    "InsufficientFundsError",
    # In-memory implementation
    "InMemoryAccountGateway",
    "InMemoryNotificationGateway",
    # Google Sheets implementation
    "GoogleSheetsAccountGateway",
    "GoogleSheetsNotificationGateway",
]
