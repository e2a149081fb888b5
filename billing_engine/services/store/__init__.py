"""
Store Services Package

Interfaces for the external finance store and the audit log, plus
in-memory implementations. Real backends live outside this package.
"""

from billing_engine.services.store.interface import (
    AuditStorageInterface,
    DuplicateError,
    FinanceStoreInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from billing_engine.services.store.memory import (
    InMemoryAuditStorage,
    InMemoryFinanceStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "FinanceStoreInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryFinanceStore",
]
