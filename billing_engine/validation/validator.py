"""
Two-Stage Snapshot Validation

DESIGN DECISION: The engine assumes its input was validated at the
boundary and never re-checks while computing. This validator is that
boundary check, run by the service after each fetch.

STAGE 1 - SCHEMA VALIDATION (record by record):
- Positive amounts
- Card purchases carry a card id
- Installment counts of at least 1
- Card days within 1..31
- Unique ids

STAGE 2 - REFERENCE VALIDATION (across records):
- Card ids pointing to missing cards (billed with the fallback cycle)
- Reimbursements citing unknown installments
- Installments reimbursed more than once
- Several limits configured for one month

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the engine keeps computing with its documented
fallbacks.
"""

from collections import Counter
from typing import Iterable, Optional

from billing_engine.engine.aggregator import reimbursement_references
from billing_engine.engine.scheduler import CardFallbackPolicy, schedule_all
from billing_engine.models.finance import FinanceSnapshot
from billing_engine.models.validation import ValidationIssue, ValidationResult


class SnapshotValidator:
    """
    Validates a snapshot through a two-stage pipeline.

    Stage 2 runs even when stage 1 fails: reference problems are
    independent of malformed records and worth reporting together.
    """

    def __init__(self, policy: Optional[CardFallbackPolicy] = None):
        self._policy = policy

    @staticmethod
    def _duplicate_ids(kind: str, ids: Iterable[str]) -> list[ValidationIssue]:
        counts = Counter(ids)
        return [
            ValidationIssue(
                field="id",
                issue_type="duplicate_id",
                message=f"{kind.capitalize()} id {record_id!r} is used {count} times",
                severity="error",
                entity_id=record_id,
            )
            for record_id, count in counts.items()
            if count > 1
        ]

    def _validate_schema(
        self,
        snapshot: FinanceSnapshot,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for expense in snapshot.expenses:
            if expense.amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"Expense {expense.description!r} has a non-positive amount",
                    severity="error",
                    entity_id=expense.id,
                ))

            if expense.is_card_purchase and not expense.card_id:
                issues.append(ValidationIssue(
                    field="card_id",
                    issue_type="missing",
                    message=f"Card purchase {expense.description!r} has no card",
                    severity="error",
                    entity_id=expense.id,
                ))

            if expense.total_installments is not None and expense.total_installments < 1:
                issues.append(ValidationIssue(
                    field="total_installments",
                    issue_type="invalid_value",
                    message=(
                        f"Expense {expense.description!r} has "
                        f"{expense.total_installments} installments; billed as 1"
                    ),
                    severity="warning",
                    entity_id=expense.id,
                ))

        for income in snapshot.incomes:
            if income.amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message=f"Income {income.description!r} has a non-positive amount",
                    severity="error",
                    entity_id=income.id,
                ))

        for card in snapshot.cards:
            for field_name in ("best_purchase_day", "due_day"):
                day = getattr(card, field_name)
                if not 1 <= day <= 31:
                    issues.append(ValidationIssue(
                        field=field_name,
                        issue_type="invalid_value",
                        message=f"Card {card.name!r} has {field_name} {day}, expected 1-31",
                        severity="error",
                        entity_id=card.id,
                    ))

        issues.extend(self._duplicate_ids("expense", (e.id for e in snapshot.expenses)))
        issues.extend(self._duplicate_ids("income", (i.id for i in snapshot.incomes)))
        issues.extend(self._duplicate_ids("card", (c.id for c in snapshot.cards)))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_references(
        self,
        snapshot: FinanceSnapshot,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Reference validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        card_ids = {card.id for card in snapshot.cards}

        for expense in snapshot.card_expenses:
            if expense.card_id and expense.card_id not in card_ids:
                issues.append(ValidationIssue(
                    field="card_id",
                    issue_type="dangling_reference",
                    message=(
                        f"Card purchase {expense.description!r} points to missing card "
                        f"{expense.card_id!r}; billed with the fallback cycle"
                    ),
                    severity="warning",
                    entity_id=expense.id,
                ))

        installment_ids = {i.id for i in schedule_all(snapshot, policy=self._policy)}
        for installment_id, income_ids in reimbursement_references(snapshot.incomes).items():
            if installment_id not in installment_ids:
                for income_id in income_ids:
                    issues.append(ValidationIssue(
                        field="reimbursed_installment_id",
                        issue_type="dangling_reference",
                        message=f"Reimbursement cites unknown installment {installment_id!r}",
                        severity="warning",
                        entity_id=income_id,
                    ))
            if len(income_ids) > 1:
                issues.append(ValidationIssue(
                    field="reimbursed_installment_id",
                    issue_type="duplicate_reimbursement",
                    message=(
                        f"Installment {installment_id!r} is reimbursed "
                        f"{len(income_ids)} times ({', '.join(income_ids)})"
                    ),
                    severity="warning",
                    entity_id=installment_id,
                ))

        months = Counter(limit.month for limit in snapshot.config.monthly_limits)
        for month, count in months.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field="monthly_limits",
                    issue_type="duplicate_month",
                    message=f"{count} limits configured for {month}; the first one is used",
                    severity="warning",
                    entity_id=month,
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(self, snapshot: FinanceSnapshot) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        schema_valid, schema_issues = self._validate_schema(snapshot)
        references_valid, reference_issues = self._validate_references(snapshot)

        return ValidationResult(
            schema_valid=schema_valid,
            references_valid=references_valid,
            issues=schema_issues + reference_issues,
        )

    @staticmethod
    def format_issues(result: ValidationResult) -> str:
        """Plain-text report of a validation result."""
        if not result.issues:
            return "Snapshot is consistent."

        lines = []
        for issue in result.issues:
            marker = "ERROR" if issue.severity == "error" else issue.severity.upper()
            target = f" [{issue.entity_id}]" if issue.entity_id else ""
            lines.append(f"{marker}{target} {issue.field}: {issue.message}")
        return "\n".join(lines)
