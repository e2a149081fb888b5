"""
Derived View Models

Everything the engine returns. None of these are persisted; they are
recomputed from a snapshot on every call, so ids such as the
installment id are deterministic rather than random.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from billing_engine.models.finance import Expense, Income, MonthStr
from billing_engine.models.validation import ValidationIssue
from billing_engine.months import add_months


# =============================================================================
# ENUMS
# =============================================================================

class StatementKind(str, Enum):
    """Rows of the unified monthly statement list."""
    BILL = "CONTA"              # non-card expense, due on its own date
    CARD_STATEMENT = "FATURA"   # one card, one due month


class SortOrder(str, Enum):
    DATE_ASC = "DATE_ASC"
    DATE_DESC = "DATE_DESC"
    VAL_DESC = "VAL_DESC"
    VAL_ASC = "VAL_ASC"


class SeriesState(str, Enum):
    """
    Lifecycle of a recurring series.

    CLOSED is terminal: it is reached when the latest real entry of the
    series is not marked recurring.
    """
    ACTIVE = "active"
    CLOSED = "closed"


class CellSource(str, Enum):
    REAL = "real"
    VIRTUAL = "virtual"
    NONE = "none"


# =============================================================================
# INSTALLMENTS AND STATEMENTS
# =============================================================================

class Installment(BaseModel):
    """
    One installment of a card purchase.

    The id is "<expense id>#<number>" and is stable across calls.
    """

    id: str
    expense_id: str
    card_id: Optional[str] = None
    number: int = Field(ge=1)
    total: int = Field(ge=1)
    value: Decimal
    competence_month: MonthStr
    description: str
    purchase_date: date
    person_name: Optional[str] = None
    is_third_party: bool = False
    is_paid: bool = False

    @computed_field
    @property
    def due_month(self) -> str:
        """Always the month after the competence month."""
        return add_months(self.competence_month, 1)

    @property
    def label(self) -> str:
        return f"{self.number}/{self.total}"


class CardStatement(BaseModel):
    """
    Statement ("fatura") of one card for one due month.

    Paid only when every purchase behind it is flagged paid.
    """

    card_id: Optional[str] = None
    card_name: str
    due_month: MonthStr
    due_date: date
    total: Decimal = Decimal("0")
    installments: list[Installment] = Field(default_factory=list)
    is_fallback_card: bool = False

    @property
    def expense_ids(self) -> list[str]:
        seen = []
        for installment in self.installments:
            if installment.expense_id not in seen:
                seen.append(installment.expense_id)
        return seen

    @computed_field
    @property
    def is_paid(self) -> bool:
        if not self.installments:
            return False
        return all(installment.is_paid for installment in self.installments)


class StatementItem(BaseModel):
    """A row of the unified monthly obligations list."""

    kind: StatementKind
    date: date
    description: str
    category_label: str
    amount: Decimal
    expense_id: Optional[str] = None
    card_id: Optional[str] = None
    is_paid: bool = False


# =============================================================================
# MONTHLY AGGREGATES
# =============================================================================

class CeilingUsage(BaseModel):
    """How much of a month's spending ceiling is used."""

    month: MonthStr
    limit: Optional[Decimal] = None
    counted_total: Decimal = Decimal("0")
    excluded_total: Decimal = Decimal("0")
    usage_pct: Decimal = Decimal("0")


class ThirdPartySummary(BaseModel):
    """Card spending done on behalf of other people."""

    month: MonthStr
    total_purchases: Decimal = Decimal("0")
    due_this_month: Decimal = Decimal("0")
    due_future: Decimal = Decimal("0")
    due_by_person: dict[str, Decimal] = Field(default_factory=dict)
    pending: list[Installment] = Field(default_factory=list)

    @property
    def pending_total(self) -> Decimal:
        return sum((i.value for i in self.pending), Decimal("0"))


class MonthlySummary(BaseModel):
    """
    Headline numbers of a month.

    income_total includes projected recurring incomes when the summary
    was built with projections; projected_income_total is that share.
    """

    month: MonthStr
    income_total: Decimal = Decimal("0")
    projected_income_total: Decimal = Decimal("0")
    card_statements_total: Decimal = Decimal("0")
    non_card_expenses_total: Decimal = Decimal("0")
    own_due_total: Decimal = Decimal("0")
    third_party_due_total: Decimal = Decimal("0")
    pending_reimbursement_total: Decimal = Decimal("0")
    ceiling: CeilingUsage

    @computed_field
    @property
    def expense_total(self) -> Decimal:
        return self.card_statements_total + self.non_card_expenses_total

    @computed_field
    @property
    def balance(self) -> Decimal:
        return self.income_total - self.expense_total

    @computed_field
    @property
    def third_party_ratio(self) -> Decimal:
        """Third-party share of the card total, 0-1."""
        if not self.card_statements_total:
            return Decimal("0")
        ratio = self.third_party_due_total / self.card_statements_total
        return ratio.quantize(Decimal("0.0001"))


class CardPurchaseListing(BaseModel):
    """Purchases of one card with the listing totals."""

    card_id: str
    purchases: list[Expense] = Field(default_factory=list)
    total_original: Decimal = Decimal("0")
    total_per_installment: Decimal = Decimal("0")


class MonthlyOverview(BaseModel):
    """
    Everything a monthly screen shows, computed from one snapshot.

    Incomes include the projected ones; `items` is the unified list of
    bills and card statements due in the month.
    """

    summary: MonthlySummary
    items: list[StatementItem] = Field(default_factory=list)
    incomes: list[Income] = Field(default_factory=list)
    third_party: ThirdPartySummary
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def month(self) -> str:
        return self.summary.month


# =============================================================================
# RECURRING SERIES
# =============================================================================

class SeriesCell(BaseModel):
    month: MonthStr
    source: CellSource = CellSource.NONE
    amount: Optional[Decimal] = None
    entry_id: Optional[str] = None


class SeriesRow(BaseModel):
    """One recurring description over the projection horizon."""

    description: str
    state: SeriesState
    head_id: str
    head_month: MonthStr
    cells: list[SeriesCell] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((c.amount for c in self.cells if c.amount is not None), Decimal("0"))
