"""Services package."""

from billing_engine.services.store import (
    AuditStorageInterface,
    DuplicateError,
    FinanceStoreInterface,
    InMemoryAuditStorage,
    InMemoryFinanceStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "FinanceStoreInterface",
    "InMemoryAuditStorage",
    "InMemoryFinanceStore",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
]
