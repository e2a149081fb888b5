"""
Installment Scheduler

Converts a card purchase into its installments, each allocated to a
competence month (the billing cycle it belongs to). The due month of
every installment is the competence month plus one.

COMPETENCE RULE (one rule, used everywhere):
    closing_day = best_purchase_day - 1

    Cycle within the calendar month (1 <= closing_day < due_day):
        day <= closing_day  -> previous month
        day >  closing_day  -> purchase month

    Cycle crossing the month boundary (any other card, including
    best_purchase_day = 1):
        day <= closing_day  -> purchase month
        day >  closing_day  -> next month

Installments are never persisted. Their ids ("<expense id>#<n>") are
rebuilt identically on every call, independently of any other expense.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from billing_engine.config import EngineSettings, get_settings
from billing_engine.months import add_months, month_of
from billing_engine.models.finance import CreditCard, Expense, FinanceSnapshot
from billing_engine.models.views import Installment


CENT = Decimal("0.01")
UNKNOWN_CARD_ID = "unknown"


class CardFallbackPolicy(BaseModel):
    """
    Cycle assumed for purchases whose card cannot be resolved.

    An orphaned purchase is still billed, never dropped.
    """
    model_config = ConfigDict(frozen=True)

    best_purchase_day: int = Field(default=1, ge=1, le=31)
    due_day: int = Field(default=10, ge=1, le=31)
    card_name: str = "Card"

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EngineSettings] = None,
    ) -> "CardFallbackPolicy":
        settings = settings or get_settings().engine
        return cls(
            best_purchase_day=settings.fallback_best_purchase_day,
            due_day=settings.fallback_due_day,
            card_name=settings.fallback_card_name,
        )

    def card_for(self, card_id: Optional[str]) -> CreditCard:
        """Stand-in card carrying the fallback cycle."""
        return CreditCard(
            id=card_id or UNKNOWN_CARD_ID,
            name=self.card_name,
            best_purchase_day=self.best_purchase_day,
            due_day=self.due_day,
        )


def resolve_card(
    expense: Expense,
    snapshot: FinanceSnapshot,
    policy: Optional[CardFallbackPolicy] = None,
) -> tuple[CreditCard, bool]:
    """
    Card billing an expense.

    Returns (card, is_fallback). When the card is missing the policy's
    stand-in card is returned and is_fallback is True.
    """
    card = snapshot.card_by_id(expense.card_id)
    if card is not None:
        return card, False
    policy = policy or CardFallbackPolicy.from_settings()
    return policy.card_for(expense.card_id), True


def competence_month(
    purchase_date: date,
    best_purchase_day: int,
    due_day: int,
) -> str:
    """Billing cycle (YYYY-MM) a purchase made on purchase_date joins."""
    closing_day = best_purchase_day - 1
    purchase_month = month_of(purchase_date)
    on_or_before_closing = purchase_date.day <= closing_day

    if 1 <= closing_day < due_day:
        return add_months(purchase_month, -1) if on_or_before_closing else purchase_month

    return purchase_month if on_or_before_closing else add_months(purchase_month, 1)


def due_month_for(
    purchase_date: date,
    best_purchase_day: int,
    due_day: int,
) -> str:
    """Month in which the first installment of a purchase is due."""
    return add_months(competence_month(purchase_date, best_purchase_day, due_day), 1)


def installment_value(expense: Expense) -> Decimal:
    """
    Value of each installment.

    An explicit installment_value wins. Otherwise the amount is split
    evenly and rounded half-up to cents; the drift on the total is
    accepted, no cent is redistributed.
    """
    if expense.installment_value:
        return expense.installment_value
    return (expense.amount / expense.installment_count).quantize(CENT, rounding=ROUND_HALF_UP)


def schedule_installments(
    expense: Expense,
    card: Optional[CreditCard] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> list[Installment]:
    """
    Installments of one card purchase.

    Args:
        expense: The purchase. Non-card expenses yield no installments.
        card: The card billing it. None applies the fallback policy.
        policy: Fallback cycle; defaults to the configured one.
        audit_logger: Optional AuditLogger told about fallbacks.
    """
    if not expense.is_card_purchase:
        return []

    if card is None:
        policy = policy or CardFallbackPolicy.from_settings()
        card = policy.card_for(expense.card_id)
        if audit_logger:
            audit_logger.log_card_fallback(
                expense_id=expense.id,
                card_id=expense.card_id,
                best_purchase_day=card.best_purchase_day,
                due_day=card.due_day,
            )

    first_month = competence_month(expense.date, card.best_purchase_day, card.due_day)
    qty = expense.installment_count
    value = installment_value(expense)

    return [
        Installment(
            id=f"{expense.id}#{i + 1}",
            expense_id=expense.id,
            card_id=expense.card_id,
            number=i + 1,
            total=qty,
            value=value,
            competence_month=add_months(first_month, i),
            description=expense.description,
            purchase_date=expense.date,
            person_name=expense.person_name,
            is_third_party=expense.is_third_party,
            is_paid=expense.is_paid,
        )
        for i in range(qty)
    ]


def schedule_all(
    snapshot: FinanceSnapshot,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> list[Installment]:
    """Installments of every card purchase, in expense order."""
    policy = policy or CardFallbackPolicy.from_settings()
    installments = []
    for expense in snapshot.card_expenses:
        card = snapshot.card_by_id(expense.card_id)
        installments.extend(
            schedule_installments(expense, card, policy=policy, audit_logger=audit_logger)
        )
    return installments
