"""
Finance Service

This module ties the store, the validator and the engine together and
defines the flows the application runs:
1. Views (fetch -> validate -> compute)
2. Mutations (guard -> write -> audit)

DESIGN DECISION: The service enforces the boundaries:
- Every view is computed from a fresh snapshot; nothing is cached
- Virtual entries are never deleted, paid or edited, only confirmed
- An installment is reimbursed at most once through the service
- Every write is audited

The engine itself stays pure; this is the only place that talks to the
store.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from billing_engine.audit import AuditLogger, create_correlation_id
from billing_engine.config import get_settings
from billing_engine.engine import (
    CardFallbackPolicy,
    available_months,
    entries_for_month,
    is_virtual_id,
    materialize,
    non_card_expenses_for_month,
    project_month,
    reimbursement_draft,
    reimbursement_references,
    schedule_all,
    statement_items,
    statements_for_month,
    summarize_month,
    third_party_summary,
)
from billing_engine.engine import series_table as build_series_table
from billing_engine.models.audit import EngineEventBuilder, EngineEventType
from billing_engine.models.finance import Expense, FinanceSnapshot, Income
from billing_engine.models.validation import ValidationResult
from billing_engine.models.views import (
    CardStatement,
    MonthlyOverview,
    SeriesRow,
    SortOrder,
    StatementItem,
    StatementKind,
)
from billing_engine.services.store import (
    DuplicateError,
    FinanceStoreInterface,
    InMemoryFinanceStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from billing_engine.validation import SnapshotValidator


class VirtualEntryError(Exception):
    """A write targeted a projected entry, or a confirm targeted a real one."""
    pass


class DuplicateReimbursementError(DuplicateError):
    """The installment already has a reimbursement income."""
    pass


class FinanceService:
    """
    Facade over one finance store.

    Flow of every view:
    1. Fetch → snapshot from the store (retried on connection errors)
    2. Validate → issues are audited and attached, never fixed
    3. Compute → pure engine functions

    Mutations go straight to the store; the next view fetches again.
    """

    def __init__(
        self,
        store: FinanceStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[SnapshotValidator] = None,
        policy: Optional[CardFallbackPolicy] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._policy = policy or CardFallbackPolicy.from_settings()
        self._validator = validator or SnapshotValidator(self._policy)
        self._last_validation: Optional[ValidationResult] = None

    @property
    def last_validation(self) -> Optional[ValidationResult]:
        """Validation result of the most recent fetch."""
        return self._last_validation

    def _log(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    def _write(self, operation: str, write, *args):
        """Run a store write, auditing and re-raising storage failures."""
        try:
            return write(*args)
        except StorageError as e:
            if self._audit_logger:
                self._audit_logger.log_store_error(
                    operation=operation,
                    error_message=str(e),
                )
            raise

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def _fetch(self) -> FinanceSnapshot:
        store_settings = get_settings().store
        retrying = Retrying(
            retry=retry_if_exception_type(StoreConnectionError),
            stop=stop_after_attempt(store_settings.retry_attempts),
            wait=wait_exponential(
                multiplier=store_settings.retry_min_wait_seconds,
                min=store_settings.retry_min_wait_seconds,
                max=store_settings.retry_max_wait_seconds,
            ),
            reraise=True,
        )
        return retrying(self._store.get_snapshot)

    def snapshot(self, correlation_id: Optional[UUID] = None) -> FinanceSnapshot:
        """
        Fetch and validate a fresh snapshot.

        Raises:
            StoreConnectionError: If the store stays unreachable after
                the configured number of attempts
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            snapshot = self._fetch()
        except StoreConnectionError as e:
            self._log(EngineEventBuilder.snapshot_fetch_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise

        self._log(EngineEventBuilder.snapshot_fetched(
            expenses=len(snapshot.expenses),
            incomes=len(snapshot.incomes),
            cards=len(snapshot.cards),
            correlation_id=correlation_id,
        ))

        result = self._validator.validate(snapshot)
        self._last_validation = result
        self._log(EngineEventBuilder.snapshot_validated(
            is_valid=result.is_valid,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        ))
        return snapshot

    # =========================================================================
    # VIEWS
    # =========================================================================

    def monthly_overview(
        self,
        month: str,
        order: SortOrder = SortOrder.DATE_ASC,
    ) -> MonthlyOverview:
        """Summary, obligations, incomes and third-party split of a month."""
        snapshot = self.snapshot()
        # One schedule shared by every part of the overview
        installments = schedule_all(
            snapshot, policy=self._policy, audit_logger=self._audit_logger
        )

        return MonthlyOverview(
            summary=summarize_month(
                snapshot,
                month,
                installments=installments,
                policy=self._policy,
                audit_logger=self._audit_logger,
            ),
            items=statement_items(
                snapshot,
                month=month,
                order=order,
                include_virtual=True,
                installments=installments,
                policy=self._policy,
            ),
            incomes=entries_for_month(snapshot.incomes, month),
            third_party=third_party_summary(
                snapshot,
                month,
                installments=installments,
            ),
            issues=self._last_validation.issues if self._last_validation else [],
        )

    def statements(self, due_month: str) -> list[CardStatement]:
        """Card statements due in a month."""
        snapshot = self.snapshot()
        return statements_for_month(
            snapshot, due_month, policy=self._policy, audit_logger=self._audit_logger
        )

    def statement_items(
        self,
        month: Optional[str] = None,
        kind: Optional[StatementKind] = None,
        order: SortOrder = SortOrder.DATE_ASC,
    ) -> list[StatementItem]:
        snapshot = self.snapshot()
        return statement_items(
            snapshot,
            month=month,
            kind=kind,
            order=order,
            include_virtual=month is not None,
            policy=self._policy,
            audit_logger=self._audit_logger,
        )

    def incomes_for_month(self, month: str, include_virtual: bool = True) -> list[Income]:
        return entries_for_month(self.snapshot().incomes, month, include_virtual=include_virtual)

    def expenses_for_month(self, month: str, include_virtual: bool = True) -> list[Expense]:
        """Non-card expenses of a month; card purchases appear through statements."""
        return non_card_expenses_for_month(self.snapshot(), month, include_virtual=include_virtual)

    def series_table(
        self,
        start_month: str,
        kind: str = "income",
        horizon: Optional[int] = None,
    ) -> list[SeriesRow]:
        """
        Projection table of incomes (kind="income") or bills (kind="expense").
        """
        snapshot = self.snapshot()
        if kind == "income":
            entries = snapshot.incomes
        elif kind == "expense":
            entries = snapshot.non_card_expenses
        else:
            raise ValueError(f"Unknown series kind: {kind!r}")
        return build_series_table(entries, start_month, horizon=horizon)

    def available_months(self, today: Optional[date] = None) -> list[str]:
        return available_months(
            self.snapshot(), today=today, policy=self._policy, audit_logger=self._audit_logger
        )

    # =========================================================================
    # VIRTUAL ENTRIES
    # =========================================================================

    def _reject_virtual(self, entity_type: str, entry_id: str, action: str) -> None:
        if not is_virtual_id(entry_id):
            return
        self._log(EngineEventBuilder.virtual_entry_rejected(
            entity_type=entity_type,
            virtual_id=entry_id,
            action=action,
        ))
        raise VirtualEntryError(
            f"{entry_id} is a projected {entity_type}; confirm it before you {action} it"
        )

    def _find_virtual(self, entries, entry_id: str, month: str, entity_type: str):
        if not is_virtual_id(entry_id):
            raise VirtualEntryError(f"{entry_id} is not a projected {entity_type}")

        for entry in project_month(entries, month):
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"No projected {entity_type} {entry_id} in {month}")

    def confirm_virtual_income(self, virtual_id: str, month: str) -> Income:
        """
        Persist a projected income as a real one.

        The new entry is recurring and becomes the head of its series.

        Raises:
            VirtualEntryError: If the id is not a projected id
            NotFoundError: If nothing is projected under that id in `month`
        """
        snapshot = self.snapshot()
        virtual = self._find_virtual(snapshot.incomes, virtual_id, month, "income")

        created = self._write("add_income", self._store.add_income, materialize(virtual))
        self._log(EngineEventBuilder.virtual_entry_confirmed(
            entity_type="income",
            virtual_id=virtual_id,
            new_id=created.id,
        ))
        return created

    def confirm_virtual_expense(self, virtual_id: str, month: str) -> Expense:
        """Persist a projected bill as a real one (see confirm_virtual_income)."""
        snapshot = self.snapshot()
        virtual = self._find_virtual(snapshot.non_card_expenses, virtual_id, month, "expense")

        created = self._write("add_expense", self._store.add_expense, materialize(virtual))
        self._log(EngineEventBuilder.virtual_entry_confirmed(
            entity_type="expense",
            virtual_id=virtual_id,
            new_id=created.id,
        ))
        return created

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def delete_income(self, income_id: str) -> bool:
        self._reject_virtual("income", income_id, "delete")
        deleted = self._write("delete_income", self._store.delete_income, income_id)
        self._log(EngineEventBuilder.entity_changed(
            EngineEventType.ENTITY_DELETED, "income", income_id
        ))
        return deleted

    def delete_expense(self, expense_id: str) -> bool:
        self._reject_virtual("expense", expense_id, "delete")
        deleted = self._write("delete_expense", self._store.delete_expense, expense_id)
        self._log(EngineEventBuilder.entity_changed(
            EngineEventType.ENTITY_DELETED, "expense", expense_id
        ))
        return deleted

    def set_expense_paid(self, expense_id: str, paid: bool = True) -> Expense:
        self._reject_virtual("expense", expense_id, "pay")
        updated = self._write(
            "update_expense", self._store.update_expense, expense_id, {"is_paid": paid}
        )
        self._log(EngineEventBuilder.entity_changed(
            EngineEventType.ENTITY_UPDATED, "expense", expense_id
        ))
        return updated

    def record_reimbursement(
        self,
        installment_id: str,
        on: Optional[date] = None,
    ) -> Income:
        """
        Create the reimbursement income settling a third-party installment.

        Raises:
            NotFoundError: If no third-party installment has that id
            DuplicateReimbursementError: If it is already reimbursed
        """
        correlation_id = create_correlation_id()
        snapshot = self.snapshot(correlation_id)

        installment = next(
            (
                i for i in schedule_all(snapshot, policy=self._policy)
                if i.id == installment_id and i.is_third_party
            ),
            None,
        )
        if installment is None:
            raise NotFoundError(f"Third-party installment {installment_id} not found")

        cited_by = reimbursement_references(snapshot.incomes).get(installment_id)
        if cited_by:
            raise DuplicateReimbursementError(
                f"Installment {installment_id} is already reimbursed by {', '.join(cited_by)}"
            )

        created = self._write(
            "add_income", self._store.add_income, reimbursement_draft(installment, on=on)
        )
        self._log(EngineEventBuilder.reimbursement_recorded(
            installment_id=installment_id,
            income_id=created.id,
            amount=str(created.amount),
            correlation_id=correlation_id,
        ))
        return created


def create_service(
    store: Optional[FinanceStoreInterface] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FinanceService:
    """
    Factory function to create a wired service.

    Without a store an empty in-memory one is used; without an audit
    logger a local-only one is created.
    """
    return FinanceService(
        store=store or InMemoryFinanceStore(),
        audit_logger=audit_logger or AuditLogger(),
    )
