"""Services package."""

from finance_scheduler.services.gateways import (
    AccountBalanceGateway,
    AccountNotFoundError,
    GatewayError,
    GatewayTimeoutError,
    GoogleSheetsAccountGateway,
    GoogleSheetsNotificationGateway,
    InMemoryAccountGateway,
    InMemoryNotificationGateway,
    InsufficientFundsError,
    NotificationGateway,
)
from finance_scheduler.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsScheduleStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryScheduleStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    ScheduleStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Gateways
    "AccountBalanceGateway",
    "AccountNotFoundError",
    "GatewayError",
    "GatewayTimeoutError",
    "GoogleSheetsAccountGateway",
    "GoogleSheetsNotificationGateway",
    "InMemoryAccountGateway",
    "InMemoryNotificationGateway",
    "InsufficientFundsError",
    "NotificationGateway",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsScheduleStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryScheduleStorage",
    "InMemoryTransactionStorage",
    "NotFoundError",
    "ScheduleStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]
