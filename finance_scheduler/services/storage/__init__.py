"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
In-memory storage backs tests and local runs; Google Sheets is the
persistent backend.
"""

from finance_scheduler.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    ScheduleStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from finance_scheduler.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryScheduleStorage,
    InMemoryTransactionStorage,
)
from finance_scheduler.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsScheduleStorage,
    GoogleSheetsTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ScheduleStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryScheduleStorage",
    "InMemoryTransactionStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsScheduleStorage",
    "GoogleSheetsTransactionStorage",
]
