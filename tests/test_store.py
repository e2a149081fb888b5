"""
Tests for the in-memory store and the audit logger.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from billing_engine.audit import AuditLogger, create_correlation_id
from billing_engine.models import (
    CreditCard,
    EngineEventBuilder,
    EngineEventType,
    Expense,
    ExpenseType,
    Income,
)
from billing_engine.services.store import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryFinanceStore,
    NotFoundError,
)


def rent(id: str = "") -> Expense:
    return Expense(
        id=id,
        description="Rent",
        amount=Decimal("1500"),
        date=date(2024, 3, 5),
        type=ExpenseType.DIRECT_PAYMENT,
        recurring=True,
    )


class TestInMemoryFinanceStore:
    """Tests for InMemoryFinanceStore."""

    def test_add_assigns_id(self):
        """Test that records without an id get a fresh one."""
        store = InMemoryFinanceStore()
        stored = store.add_expense(rent())

        assert len(stored.id) == 32
        assert store.get_snapshot().expenses == [stored]

    def test_add_duplicate_id(self):
        """Test that an existing id cannot be inserted again."""
        store = InMemoryFinanceStore()
        store.add_expense(rent("e1"))
        with pytest.raises(DuplicateError):
            store.add_expense(rent("e1"))

    def test_update_applies_changes(self):
        """Test a partial update."""
        store = InMemoryFinanceStore()
        store.add_expense(rent("e1"))
        updated = store.update_expense("e1", {"is_paid": True, "id": "ignored"})

        assert updated.id == "e1"
        assert updated.is_paid is True
        assert store.get_snapshot().expenses[0].is_paid is True

    def test_update_and_delete_missing(self):
        """Test that unknown ids raise NotFoundError."""
        store = InMemoryFinanceStore()
        with pytest.raises(NotFoundError):
            store.update_income("nope", {"amount": Decimal("1")})
        with pytest.raises(NotFoundError):
            store.delete_card("nope")

    def test_snapshots_are_independent(self):
        """Test that a snapshot does not change after later writes."""
        store = InMemoryFinanceStore()
        before = store.get_snapshot()
        store.add_card(CreditCard(id="c1", name="Blue", best_purchase_day=5, due_day=15))

        assert before.cards == []
        assert len(store.get_snapshot().cards) == 1

    def test_delete_card_keeps_purchases(self):
        """Test that purchases of a deleted card stay in the store."""
        store = InMemoryFinanceStore()
        store.add_card(CreditCard(id="c1", name="Blue", best_purchase_day=5, due_day=15))
        store.add_expense(Expense(
            id="e1",
            description="Shoes",
            amount=Decimal("200"),
            date=date(2024, 3, 10),
            type=ExpenseType.CARD_PURCHASE,
            card_id="c1",
        ))
        store.delete_card("c1")

        snapshot = store.get_snapshot()
        assert snapshot.cards == []
        assert snapshot.expenses[0].card_id == "c1"

    def test_update_config(self):
        """Test replacing the monthly limits."""
        store = InMemoryFinanceStore()
        config = store.update_config({"monthly_limits": [{"month": "2024-03", "amount": "900"}]})
        assert config.limit_for("2024-03") == Decimal("900")

    def test_from_json(self):
        """Test loading the store's camelCase JSON."""
        store = InMemoryFinanceStore.from_json(
            '{"incomes": [{"id": "i1", "description": "Salary", "amount": "10",'
            ' "date": "2024-01-01", "incomeType": "SALARIO"}]}'
        )
        incomes = store.get_snapshot().incomes
        assert isinstance(incomes[0], Income)
        assert incomes[0].id == "i1"


class TestAuditLogger:
    """Tests for AuditLogger and InMemoryAuditStorage."""

    def test_events_are_stored(self):
        """Test that events reach the storage."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        assert logger.log(EngineEventBuilder.entity_changed(
            EngineEventType.ENTITY_DELETED, "income", "i1"
        ))
        assert storage.get_recent_events()[0].entity_id == "i1"

    def test_helpers_build_events(self):
        """Test the typed logging helpers."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        logger.log_card_fallback("e1", "gone", 1, 10)
        logger.log_month_range_capped("2000-01", "2024-03", 120)
        logger.log_duplicate_reimbursement("e1#1", ["i1", "i2"])
        logger.log_store_error("add_income", "boom")

        assert [e.event_type for e in reversed(storage.get_recent_events())] == [
            EngineEventType.CARD_FALLBACK_APPLIED,
            EngineEventType.MONTH_RANGE_CAPPED,
            EngineEventType.DUPLICATE_REIMBURSEMENT,
            EngineEventType.STORE_ERROR,
        ]

    def test_recent_events_filter_and_limit(self):
        """Test entity filtering and the limit."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        for entity_id in ("a", "b", "a"):
            logger.log(EngineEventBuilder.entity_changed(
                EngineEventType.ENTITY_UPDATED, "expense", entity_id
            ))

        assert len(storage.get_recent_events(entity_id="a")) == 2
        assert len(storage.get_recent_events(limit=1)) == 1

    def test_correlated_events(self):
        """Test lookup by correlation id."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        logger.log_store_error("delete_income", "boom", correlation_id=correlation_id)
        logger.log_store_error("delete_income", "boom")

        assert len(storage.get_events_by_correlation_id(correlation_id)) == 1

    def test_storage_failure_is_not_raised(self):
        """Test that a broken audit storage never breaks the caller."""
        storage = MagicMock()
        storage.append_event.side_effect = RuntimeError("disk full")
        logger = AuditLogger(storage)

        assert logger.log(EngineEventBuilder.store_error("x", "y")) is False

    def test_without_storage(self):
        """Test local-only logging."""
        assert AuditLogger().log(EngineEventBuilder.store_error("x", "y")) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
