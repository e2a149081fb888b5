"""
In-Memory Store

Reference implementation of the store interfaces. Used by the tests
and by local tooling that loads a snapshot from JSON.
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from billing_engine.models.audit import EngineEvent
from billing_engine.models.finance import (
    CreditCard,
    Expense,
    FinanceConfig,
    FinanceSnapshot,
    Income,
)
from billing_engine.services.store.interface import (
    AuditStorageInterface,
    DuplicateError,
    FinanceStoreInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


def _new_id() -> str:
    return uuid4().hex


class InMemoryFinanceStore(FinanceStoreInterface):
    """
    Dict-backed store.

    Records keep insertion order. Snapshots are rebuilt on every fetch,
    so a snapshot handed out earlier never changes under its holder.
    """

    def __init__(self, snapshot: Optional[FinanceSnapshot] = None):
        snapshot = snapshot or FinanceSnapshot()
        self._expenses: dict[str, Expense] = {e.id: e for e in snapshot.expenses}
        self._incomes: dict[str, Income] = {i.id: i for i in snapshot.incomes}
        self._cards: dict[str, CreditCard] = {c.id: c for c in snapshot.cards}
        self._config: FinanceConfig = snapshot.config

    @classmethod
    def from_json(cls, payload: str) -> "InMemoryFinanceStore":
        """Load the store's camelCase snapshot JSON."""
        return cls(FinanceSnapshot.model_validate_json(payload))

    def get_snapshot(self) -> FinanceSnapshot:
        return FinanceSnapshot(
            expenses=list(self._expenses.values()),
            incomes=list(self._incomes.values()),
            cards=list(self._cards.values()),
            config=self._config,
        )

    # -- generic helpers ----------------------------------------------------

    @staticmethod
    def _insert(table: dict, record, kind: str):
        record_id = record.id or _new_id()
        if record_id in table:
            raise DuplicateError(f"{kind} {record_id} already exists")
        stored = record.model_copy(update={"id": record_id})
        table[record_id] = stored
        logger.debug("store_insert", kind=kind, id=record_id)
        return stored

    @staticmethod
    def _patch(table: dict, record_id: str, changes: dict[str, Any], kind: str):
        if record_id not in table:
            raise NotFoundError(f"{kind} {record_id} not found")
        current = table[record_id]
        merged = current.model_dump(by_alias=False)
        merged.update({k: v for k, v in changes.items() if k != "id"})
        updated = type(current).model_validate(merged)
        table[record_id] = updated
        logger.debug("store_update", kind=kind, id=record_id, fields=sorted(changes))
        return updated

    @staticmethod
    def _remove(table: dict, record_id: str, kind: str) -> bool:
        if record_id not in table:
            raise NotFoundError(f"{kind} {record_id} not found")
        del table[record_id]
        logger.debug("store_delete", kind=kind, id=record_id)
        return True

    # -- expenses -----------------------------------------------------------

    def add_expense(self, expense: Expense) -> Expense:
        return self._insert(self._expenses, expense, "expense")

    def update_expense(self, expense_id: str, changes: dict[str, Any]) -> Expense:
        return self._patch(self._expenses, expense_id, changes, "expense")

    def delete_expense(self, expense_id: str) -> bool:
        return self._remove(self._expenses, expense_id, "expense")

    # -- incomes ------------------------------------------------------------

    def add_income(self, income: Income) -> Income:
        return self._insert(self._incomes, income, "income")

    def update_income(self, income_id: str, changes: dict[str, Any]) -> Income:
        return self._patch(self._incomes, income_id, changes, "income")

    def delete_income(self, income_id: str) -> bool:
        return self._remove(self._incomes, income_id, "income")

    # -- cards --------------------------------------------------------------

    def add_card(self, card: CreditCard) -> CreditCard:
        return self._insert(self._cards, card, "card")

    def update_card(self, card_id: str, changes: dict[str, Any]) -> CreditCard:
        return self._patch(self._cards, card_id, changes, "card")

    def delete_card(self, card_id: str) -> bool:
        return self._remove(self._cards, card_id, "card")

    # -- config -------------------------------------------------------------

    def update_config(self, changes: dict[str, Any]) -> FinanceConfig:
        merged = self._config.model_dump(by_alias=False)
        merged.update(changes)
        self._config = FinanceConfig.model_validate(merged)
        return self._config


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[EngineEvent] = []

    def append_event(self, event: EngineEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[EngineEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_recent_events(
        self,
        limit: int = 100,
        entity_id: Optional[str] = None,
    ) -> list[EngineEvent]:
        events = [
            e for e in reversed(self._events)
            if entity_id is None or e.entity_id == entity_id
        ]
        return events[:limit]
