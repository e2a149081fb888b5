"""
Integration tests for the finance service over the in-memory store.
"""

import pytest
from datetime import date
from decimal import Decimal

from billing_engine.audit import AuditLogger
from billing_engine.models import (
    CreditCard,
    EngineEventType,
    Expense,
    ExpenseType,
    FinanceSnapshot,
    Income,
    IncomeType,
    StatementKind,
)
from billing_engine.orchestrator import (
    DuplicateReimbursementError,
    FinanceService,
    VirtualEntryError,
    create_service,
)
from billing_engine.services.store import (
    InMemoryAuditStorage,
    InMemoryFinanceStore,
    NotFoundError,
    StoreConnectionError,
)


def seed() -> FinanceSnapshot:
    return FinanceSnapshot(
        cards=[CreditCard(id="c1", name="Blue", best_purchase_day=5, due_day=15)],
        expenses=[
            Expense(
                id="e1",
                description="Groceries",
                amount=Decimal("300"),
                date=date(2024, 3, 4),
                type=ExpenseType.CARD_PURCHASE,
                card_id="c1",
                total_installments=3,
                person_name="Ana",
            ),
            Expense(
                id="e2",
                description="Shoes",
                amount=Decimal("200"),
                date=date(2024, 3, 10),
                type=ExpenseType.CARD_PURCHASE,
                card_id="c1",
            ),
            Expense(
                id="e3",
                description="Rent",
                amount=Decimal("1500"),
                date=date(2024, 3, 5),
                type=ExpenseType.DIRECT_PAYMENT,
                recurring=True,
            ),
        ],
        incomes=[
            Income(
                id="i1",
                description="Salary",
                amount=Decimal("5000"),
                date=date(2024, 3, 1),
                income_type=IncomeType.SALARY,
                recurring=True,
            ),
        ],
    )


class FlakyStore(InMemoryFinanceStore):
    """Fails the first `failures` fetches with a connection error."""

    def __init__(self, snapshot, failures):
        super().__init__(snapshot)
        self.failures = failures
        self.calls = 0

    def get_snapshot(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreConnectionError("store unreachable")
        return super().get_snapshot()


@pytest.fixture
def no_retry_wait(monkeypatch):
    monkeypatch.setenv("BILLING_STORE_RETRY_MIN_WAIT_SECONDS", "0")
    monkeypatch.setenv("BILLING_STORE_RETRY_MAX_WAIT_SECONDS", "0")


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(audit_storage):
    return FinanceService(
        store=InMemoryFinanceStore(seed()),
        audit_logger=AuditLogger(audit_storage),
    )


def event_types(audit_storage) -> list[EngineEventType]:
    return [e.event_type for e in audit_storage.get_recent_events(limit=1000)]


class TestViews:
    """Tests for the read side of the service."""

    def test_monthly_overview(self, service):
        """Test that one call gathers the month's numbers."""
        overview = service.monthly_overview("2024-04")

        assert overview.month == "2024-04"
        assert overview.summary.income_total == Decimal("5000")
        assert overview.summary.card_statements_total == Decimal("300")
        assert [i.kind for i in overview.items] == [
            StatementKind.BILL,
            StatementKind.CARD_STATEMENT,
        ]
        assert [i.id for i in overview.incomes] == ["VIRTUAL-2024-04-Salary"]
        assert overview.third_party.due_this_month == Decimal("100")
        assert overview.issues == []

    def test_every_view_fetches_and_validates(self, service, audit_storage):
        """Test that views audit the fetch and the validation."""
        service.statements("2024-04")
        types = event_types(audit_storage)

        assert EngineEventType.SNAPSHOT_FETCHED in types
        assert EngineEventType.SNAPSHOT_VALIDATED in types
        assert service.last_validation.is_valid

    def test_statements(self, service):
        """Test the statements due in a month."""
        statements = service.statements("2024-04")
        assert len(statements) == 1
        assert statements[0].total == Decimal("300")

    def test_incomes_and_expenses_for_month(self, service):
        """Test monthly lists with projected entries."""
        assert [i.description for i in service.incomes_for_month("2024-05")] == ["Salary"]
        assert service.expenses_for_month("2024-05", include_virtual=False) == []
        assert [e.id for e in service.expenses_for_month("2024-05")] == ["VIRTUAL-2024-05-Rent"]

    def test_statement_items_across_months(self, service):
        """Test the unfiltered obligations list."""
        items = service.statement_items(kind=StatementKind.CARD_STATEMENT)
        assert [i.date for i in items] == [
            date(2024, 3, 15),
            date(2024, 4, 15),
            date(2024, 5, 15),
        ]

    def test_series_table(self, service):
        """Test the projection table for incomes and bills."""
        income_rows = service.series_table("2024-03", kind="income", horizon=3)
        expense_rows = service.series_table("2024-03", kind="expense", horizon=3)

        assert [r.description for r in income_rows] == ["Salary"]
        assert [r.description for r in expense_rows] == ["Rent"]

        with pytest.raises(ValueError):
            service.series_table("2024-03", kind="cards")

    def test_available_months(self, service):
        """Test the month picker through the service."""
        months = service.available_months(today=date(2024, 3, 1))
        assert months[0] == "2024-03"
        assert months[-1] == "2025-03"

    def test_issues_attached_to_overview(self, audit_storage):
        """Test that validation issues travel with the overview."""
        snapshot = seed()
        orphan = snapshot.expenses[1].model_copy(update={"card_id": "gone"})
        store = InMemoryFinanceStore(snapshot.model_copy(update={
            "expenses": [snapshot.expenses[0], orphan, snapshot.expenses[2]],
        }))
        service = FinanceService(store=store, audit_logger=AuditLogger(audit_storage))

        overview = service.monthly_overview("2024-04")

        assert [i.entity_id for i in overview.issues] == ["e2"]
        assert EngineEventType.CARD_FALLBACK_APPLIED in event_types(audit_storage)

    def test_overview_audits_each_finding_once(self, audit_storage):
        """Test that one overview logs one fallback and one duplicate event."""
        snapshot = seed()
        orphan = snapshot.expenses[1].model_copy(update={"card_id": "gone"})
        refunds = [
            Income(
                id=f"r{n}",
                description="Reimbursement Ana",
                amount=Decimal("100"),
                date=date(2024, 4, 20),
                income_type=IncomeType.REIMBURSEMENT,
                person_name="Ana",
                reimbursed_installment_id="e1#2",
            )
            for n in (1, 2)
        ]
        store = InMemoryFinanceStore(snapshot.model_copy(update={
            "expenses": [snapshot.expenses[0], orphan, snapshot.expenses[2]],
            "incomes": snapshot.incomes + refunds,
        }))
        service = FinanceService(store=store, audit_logger=AuditLogger(audit_storage))

        overview = service.monthly_overview("2024-04")
        types = event_types(audit_storage)

        assert types.count(EngineEventType.CARD_FALLBACK_APPLIED) == 1
        assert types.count(EngineEventType.DUPLICATE_REIMBURSEMENT) == 1
        assert overview.third_party.pending == []


class TestVirtualEntries:
    """Tests for confirming and protecting projected entries."""

    def test_confirm_virtual_income(self, service, audit_storage):
        """Test that confirming persists a recurring real income."""
        created = service.confirm_virtual_income("VIRTUAL-2024-04-Salary", "2024-04")

        assert created.id
        assert not created.id.startswith("VIRTUAL-")
        assert created.recurring is True
        assert created.date == date(2024, 4, 1)

        incomes = service.incomes_for_month("2024-04")
        assert [i.id for i in incomes] == [created.id]
        assert EngineEventType.VIRTUAL_ENTRY_CONFIRMED in event_types(audit_storage)

    def test_confirm_virtual_expense(self, service):
        """Test that a confirmed bill starts unpaid."""
        created = service.confirm_virtual_expense("VIRTUAL-2024-04-Rent", "2024-04")

        assert created.is_paid is False
        assert created.amount == Decimal("1500")
        assert [e.id for e in service.expenses_for_month("2024-04")] == [created.id]

    def test_confirm_real_id_is_refused(self, service):
        """Test that only projected ids can be confirmed."""
        with pytest.raises(VirtualEntryError):
            service.confirm_virtual_income("i1", "2024-03")

    def test_confirm_unknown_virtual_id(self, service):
        """Test a virtual id that is not projected in the month."""
        with pytest.raises(NotFoundError):
            service.confirm_virtual_income("VIRTUAL-2024-04-Bonus", "2024-04")

    def test_delete_virtual_is_refused(self, service, audit_storage):
        """Test that projected entries cannot be deleted."""
        with pytest.raises(VirtualEntryError):
            service.delete_income("VIRTUAL-2024-04-Salary")
        with pytest.raises(VirtualEntryError):
            service.delete_expense("VIRTUAL-2024-04-Rent")

        assert event_types(audit_storage).count(EngineEventType.VIRTUAL_ENTRY_REJECTED) == 2

    def test_pay_virtual_is_refused(self, service):
        """Test that projected bills cannot be marked paid."""
        with pytest.raises(VirtualEntryError):
            service.set_expense_paid("VIRTUAL-2024-04-Rent")


class TestMutations:
    """Tests for writes through the service."""

    def test_delete_real_entries(self, service, audit_storage):
        """Test deletion of real entries and its audit trail."""
        assert service.delete_income("i1")
        assert service.delete_expense("e3")

        assert service.incomes_for_month("2024-04") == []
        assert EngineEventType.ENTITY_DELETED in event_types(audit_storage)

    def test_delete_unknown_entry(self, service, audit_storage):
        """Test that deleting a missing id raises NotFoundError and is audited."""
        with pytest.raises(NotFoundError):
            service.delete_expense("nope")
        assert EngineEventType.STORE_ERROR in event_types(audit_storage)

    def test_set_expense_paid(self, service):
        """Test that paying every purchase pays the statement."""
        service.set_expense_paid("e1")
        service.set_expense_paid("e2")

        statement = service.statements("2024-04")[0]
        assert statement.is_paid

    def test_record_reimbursement(self, service, audit_storage):
        """Test that a reimbursement settles the installment."""
        income = service.record_reimbursement("e1#2", on=date(2024, 4, 20))

        assert income.reimbursed_installment_id == "e1#2"
        assert income.amount == Decimal("100.00")
        assert service.monthly_overview("2024-04").third_party.pending == []
        assert EngineEventType.REIMBURSEMENT_RECORDED in event_types(audit_storage)

    def test_second_reimbursement_is_refused(self, service):
        """Test that an installment cannot be reimbursed twice."""
        service.record_reimbursement("e1#2")
        with pytest.raises(DuplicateReimbursementError):
            service.record_reimbursement("e1#2")

    def test_reimbursement_of_own_purchase(self, service):
        """Test that only third-party installments can be reimbursed."""
        with pytest.raises(NotFoundError):
            service.record_reimbursement("e2#1")
        with pytest.raises(NotFoundError):
            service.record_reimbursement("e9#1")


class TestStoreFailures:
    """Tests for connection errors on fetch."""

    def test_transient_failures_are_retried(self, no_retry_wait):
        """Test that a fetch succeeds after transient failures."""
        store = FlakyStore(seed(), failures=2)
        service = FinanceService(store=store)

        assert len(service.snapshot().expenses) == 3
        assert store.calls == 3

    def test_persistent_failure_is_raised(self, no_retry_wait, audit_storage):
        """Test that the error surfaces after the configured attempts."""
        store = FlakyStore(seed(), failures=10)
        service = FinanceService(store=store, audit_logger=AuditLogger(audit_storage))

        with pytest.raises(StoreConnectionError):
            service.monthly_overview("2024-04")

        assert store.calls == 3
        assert EngineEventType.SNAPSHOT_FETCH_FAILED in event_types(audit_storage)


class TestFactory:
    """Tests for create_service."""

    def test_defaults(self):
        """Test that the factory wires an empty in-memory store."""
        service = create_service()
        overview = service.monthly_overview("2024-01")
        assert overview.summary.balance == Decimal("0")

    def test_given_store(self):
        """Test that the factory uses a given store."""
        service = create_service(InMemoryFinanceStore(seed()))
        assert len(service.statements("2024-03")) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
