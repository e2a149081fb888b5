"""
Abstract Store Interface

DESIGN DECISION: The engine never owns data. Everything lives in an
external store reached through this interface:
1. One read operation returning a full snapshot
2. Create/update/delete operations per entity
3. Nothing incremental: after any write the caller fetches again

Any backend (REST API, database, in-memory for tests) plugs in here.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from billing_engine.models.audit import EngineEvent
from billing_engine.models.finance import (
    CreditCard,
    Expense,
    FinanceConfig,
    FinanceSnapshot,
    Income,
)


class FinanceStoreInterface(ABC):
    """
    Abstract interface for the finance store.

    Create operations take a record without an id (or with a
    placeholder id) and return the stored record with the id the store
    assigned.
    """

    @abstractmethod
    def get_snapshot(self) -> FinanceSnapshot:
        """
        Fetch everything the store holds.

        Raises:
            StoreConnectionError: If the store cannot be reached
        """
        pass

    @abstractmethod
    def add_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    def update_expense(self, expense_id: str, changes: dict[str, Any]) -> Expense:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    def delete_expense(self, expense_id: str) -> bool:
        pass

    @abstractmethod
    def add_income(self, income: Income) -> Income:
        pass

    @abstractmethod
    def update_income(self, income_id: str, changes: dict[str, Any]) -> Income:
        pass

    @abstractmethod
    def delete_income(self, income_id: str) -> bool:
        pass

    @abstractmethod
    def add_card(self, card: CreditCard) -> CreditCard:
        pass

    @abstractmethod
    def update_card(self, card_id: str, changes: dict[str, Any]) -> CreditCard:
        pass

    @abstractmethod
    def delete_card(self, card_id: str) -> bool:
        """
        Delete a card.

        Purchases pointing to it are kept; they become orphans and are
        billed with the fallback cycle.
        """
        pass

    @abstractmethod
    def update_config(self, changes: dict[str, Any]) -> FinanceConfig:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: EngineEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[EngineEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
        entity_id: Optional[str] = None,
    ) -> list[EngineEvent]:
        """Most recent events first, optionally for one entity."""
        pass


class StorageError(Exception):
    """Base exception for store operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in the store."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StoreConnectionError(StorageError):
    """Could not reach the store backend."""
    pass
