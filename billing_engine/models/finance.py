"""
Core Data Models for the Billing Engine

These models describe the snapshot handed over by the external store.
They are designed to:
1. Parse the store's camelCase JSON directly (aliases)
2. Stay immutable once built (frozen)
3. Carry money as Decimal and dates as datetime.date

DESIGN DECISION: Models are deliberately lenient about business rules
(positive amounts, day ranges). Those are checked and REPORTED by
billing_engine.validation, never enforced here, so that a bad record
degrades one view instead of breaking the whole snapshot.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
)
from pydantic.alias_generators import to_camel


MonthStr = Annotated[
    str,
    StringConstraints(pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
]


# =============================================================================
# ENUMS - values as written by the external store
# =============================================================================

class ExpenseType(str, Enum):
    """
    How an expense is paid.

    BORROWED_CARD is a legacy value for purchases made on someone
    else's behalf; it is scheduled exactly like CARD_PURCHASE and the
    third-party flag still comes from person_name.
    """
    CARD_PURCHASE = "CARTAO"
    DIRECT_PAYMENT = "PIX_DEBITO"
    FINANCING = "FINANCIAMENTO"
    BORROWED_CARD = "CARTAO_EMPRESTADO"


class IncomeType(str, Enum):
    """Kinds of income."""
    SALARY = "SALARIO"
    RECURRING = "RECORRENTE"
    ONE_OFF = "PONTUAL"
    REIMBURSEMENT = "REEMBOLSO"


CARD_EXPENSE_TYPES = frozenset({ExpenseType.CARD_PURCHASE, ExpenseType.BORROWED_CARD})


class FinanceModel(BaseModel):
    """Base for snapshot records: camelCase aliases, immutable."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# CONFIGURATION RECORDS
# =============================================================================

class ClassificationRule(FinanceModel):
    """
    Keyword rule that tags a description with a category.

    A description matches when any keyword is a case-insensitive
    substring of it. Rules are not exclusive.
    """

    name: str
    color: str = "#6c757d"
    keywords: list[str] = Field(default_factory=list)
    included_in_limit: bool = Field(
        default=True,
        description="Whether matching amounts count toward the monthly ceiling"
    )


class MonthlyLimit(FinanceModel):
    """Spending ceiling for one month."""

    month: MonthStr
    amount: Decimal


class FinanceConfig(FinanceModel):
    """User configuration carried in the snapshot."""

    monthly_limits: list[MonthlyLimit] = Field(default_factory=list)
    classification_rules: list[ClassificationRule] = Field(default_factory=list)

    def limit_for(self, month: str) -> Optional[Decimal]:
        """Ceiling configured for a month, or None. First entry wins."""
        for limit in self.monthly_limits:
            if limit.month == month:
                return limit.amount
        return None


# =============================================================================
# ENTITIES
# =============================================================================

class CreditCard(FinanceModel):
    """
    A credit card and its billing cycle.

    best_purchase_day is the first day of a new cycle, one past the
    closing day.
    """

    id: str
    name: str
    best_purchase_day: int
    due_day: int
    color: Optional[str] = None

    @property
    def closing_day(self) -> int:
        """Last day a purchase still joins the current cycle."""
        return self.best_purchase_day - 1


class Expense(FinanceModel):
    """
    Money going out: a card purchase, a direct payment or a financing bill.

    classifications is derived from the current rules and never stored.
    """

    id: str
    description: str
    amount: Decimal
    date: date
    type: ExpenseType

    card_id: Optional[str] = None
    total_installments: Optional[int] = None
    installment_value: Optional[Decimal] = None
    person_name: Optional[str] = None
    notes: Optional[str] = None
    is_paid: bool = False
    recurring: bool = False

    classifications: list[ClassificationRule] = Field(
        default_factory=list,
        exclude=True,
    )

    @property
    def is_card_purchase(self) -> bool:
        return self.type in CARD_EXPENSE_TYPES

    @property
    def is_third_party(self) -> bool:
        """Bought on someone else's behalf."""
        return bool(self.person_name and self.person_name.strip())

    @property
    def installment_count(self) -> int:
        """Number of installments; absent or non-positive counts as 1."""
        if self.total_installments and self.total_installments > 0:
            return self.total_installments
        return 1

    @property
    def month(self) -> str:
        return self.date.strftime("%Y-%m")


class Income(FinanceModel):
    """Money coming in."""

    id: str
    description: str
    amount: Decimal
    date: date
    income_type: IncomeType = IncomeType.ONE_OFF

    recurring: bool = False
    notes: Optional[str] = None
    person_name: Optional[str] = None
    reimbursed_installment_id: Optional[str] = Field(
        default=None,
        alias="parcelaReferenteId",
        description="Installment id this reimbursement settles"
    )

    @property
    def is_reimbursement(self) -> bool:
        return self.income_type == IncomeType.REIMBURSEMENT

    @property
    def month(self) -> str:
        return self.date.strftime("%Y-%m")


class FinanceSnapshot(FinanceModel):
    """
    Everything the store holds, as of one fetch.

    The engine never mutates a snapshot; writes go through the store
    followed by a fresh fetch.
    """

    expenses: list[Expense] = Field(default_factory=list)
    incomes: list[Income] = Field(default_factory=list)
    cards: list[CreditCard] = Field(default_factory=list)
    config: FinanceConfig = Field(default_factory=FinanceConfig)

    def card_by_id(self, card_id: Optional[str]) -> Optional[CreditCard]:
        if not card_id:
            return None
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    @property
    def card_expenses(self) -> list[Expense]:
        return [e for e in self.expenses if e.is_card_purchase]

    @property
    def non_card_expenses(self) -> list[Expense]:
        return [e for e in self.expenses if not e.is_card_purchase]
