"""
Billing Aggregator

Turns installments and non-card expenses into monthly views:
- card statements grouped by (card, due month)
- the unified obligations list (bills + card statements)
- ceiling usage against the month's spending limit
- the self vs third-party split and pending reimbursements
- the months a picker should offer

Groupings are explicit functions returning mappings in a fixed order
so that output is stable for a given snapshot.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence, TypeVar

from billing_engine.config import get_settings
from billing_engine.engine.classifier import counts_toward_limit
from billing_engine.months import (
    add_months,
    current_month,
    month_day,
    month_range,
    months_between,
)
from billing_engine.engine.projector import entries_for_month, is_virtual_id, virtual_prefix
from billing_engine.engine.scheduler import (
    UNKNOWN_CARD_ID,
    CardFallbackPolicy,
    installment_value,
    schedule_all,
)
from billing_engine.models.finance import (
    ClassificationRule,
    Expense,
    ExpenseType,
    FinanceSnapshot,
    Income,
    IncomeType,
)
from billing_engine.models.views import (
    CardPurchaseListing,
    CardStatement,
    CeilingUsage,
    Installment,
    MonthlySummary,
    SortOrder,
    StatementItem,
    StatementKind,
    ThirdPartySummary,
)


ZERO = Decimal("0")
HOLDER = "HOLDER"  # person filter keeping only the cardholder's own purchases

CATEGORY_LABELS = {
    ExpenseType.DIRECT_PAYMENT: "Pix/Debit",
    ExpenseType.FINANCING: "Financing",
}
CARD_STATEMENT_LABEL = "Card statement"

Sortable = TypeVar("Sortable")


def _total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def sort_entries(items: Iterable[Sortable], order: SortOrder = SortOrder.DATE_ASC) -> list[Sortable]:
    """Sort anything with `date` and `amount` attributes."""
    items = list(items)
    if order == SortOrder.DATE_DESC:
        return sorted(items, key=lambda i: i.date, reverse=True)
    if order == SortOrder.VAL_DESC:
        return sorted(items, key=lambda i: i.amount, reverse=True)
    if order == SortOrder.VAL_ASC:
        return sorted(items, key=lambda i: i.amount)
    return sorted(items, key=lambda i: i.date)


# =============================================================================
# CARD STATEMENTS
# =============================================================================

def group_statements(
    snapshot: FinanceSnapshot,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> dict[tuple[str, str], CardStatement]:
    """
    Statements keyed by (card id, due month), sorted by that key.

    Purchases of a missing card are grouped under their dangling card id
    (or "unknown") and billed with the fallback policy.
    """
    policy = policy or CardFallbackPolicy.from_settings()
    if installments is None:
        installments = schedule_all(snapshot, policy=policy, audit_logger=audit_logger)

    grouped: dict[tuple[str, str], list[Installment]] = {}
    for installment in installments:
        key = (installment.card_id or UNKNOWN_CARD_ID, installment.due_month)
        grouped.setdefault(key, []).append(installment)

    statements = {}
    for key in sorted(grouped):
        card_key, due_month = key
        card = snapshot.card_by_id(card_key)
        is_fallback = card is None
        if is_fallback:
            card = policy.card_for(card_key)

        members = grouped[key]
        statements[key] = CardStatement(
            card_id=None if card_key == UNKNOWN_CARD_ID else card_key,
            card_name=card.name,
            due_month=due_month,
            due_date=month_day(due_month, card.due_day, clamp=True),
            total=_total(i.value for i in members),
            installments=members,
            is_fallback_card=is_fallback,
        )
    return statements


def statements_for_month(
    snapshot: FinanceSnapshot,
    due_month: str,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> list[CardStatement]:
    """All card statements due in a month, ordered by card id."""
    statements = group_statements(snapshot, installments, policy=policy, audit_logger=audit_logger)
    return [s for (_, month), s in statements.items() if month == due_month]


def card_statement(
    snapshot: FinanceSnapshot,
    card_id: str,
    due_month: str,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
) -> Optional[CardStatement]:
    """Statement of one card for one due month, None when nothing is due."""
    statements = group_statements(snapshot, installments, policy=policy)
    return statements.get((card_id, due_month))


# =============================================================================
# NON-CARD EXPENSES AND THE UNIFIED LIST
# =============================================================================

def non_card_expenses_for_month(
    snapshot: FinanceSnapshot,
    month: str,
    include_virtual: bool = False,
    prefix: Optional[str] = None,
) -> list[Expense]:
    """Bills dated in a month, optionally with projected recurring bills."""
    return entries_for_month(
        snapshot.non_card_expenses, month, include_virtual=include_virtual, prefix=prefix
    )


def _bill_item(expense: Expense) -> StatementItem:
    return StatementItem(
        kind=StatementKind.BILL,
        date=expense.date,
        description=expense.description,
        category_label=CATEGORY_LABELS.get(expense.type, expense.type.value),
        amount=expense.amount,
        expense_id=expense.id,
        is_paid=expense.is_paid,
    )


def _statement_item(statement: CardStatement) -> StatementItem:
    return StatementItem(
        kind=StatementKind.CARD_STATEMENT,
        date=statement.due_date,
        description=f"Statement {statement.card_name}",
        category_label=CARD_STATEMENT_LABEL,
        amount=statement.total,
        card_id=statement.card_id,
        is_paid=statement.is_paid,
    )


def statement_items(
    snapshot: FinanceSnapshot,
    month: Optional[str] = None,
    kind: Optional[StatementKind] = None,
    order: SortOrder = SortOrder.DATE_ASC,
    include_virtual: bool = False,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> list[StatementItem]:
    """
    Unified list of monthly obligations.

    Bills are placed on their own date; card statements on their due
    date. `month` filters on those dates (the due month). Projected
    bills only appear when a month is given.
    """
    items = []

    if kind in (None, StatementKind.BILL):
        if month is None:
            bills = snapshot.non_card_expenses
        else:
            bills = non_card_expenses_for_month(snapshot, month, include_virtual=include_virtual)
        items.extend(_bill_item(e) for e in bills)

    if kind in (None, StatementKind.CARD_STATEMENT):
        statements = group_statements(
            snapshot, installments, policy=policy, audit_logger=audit_logger
        )
        items.extend(
            _statement_item(s) for (_, due), s in statements.items()
            if month is None or due == month
        )

    return sort_entries(items, order)


# =============================================================================
# CEILING
# =============================================================================

def _ceiling(
    month: str,
    limit: Optional[Decimal],
    rules: Sequence[ClassificationRule],
    amounts: Iterable[tuple[str, Decimal]],
) -> CeilingUsage:
    counted = ZERO
    excluded = ZERO
    for description, amount in amounts:
        if counts_toward_limit(description, rules):
            counted += amount
        else:
            excluded += amount

    usage = ZERO
    if limit:
        usage = (counted / limit * 100).quantize(Decimal("0.01"))

    return CeilingUsage(
        month=month,
        limit=limit,
        counted_total=counted,
        excluded_total=excluded,
        usage_pct=usage,
    )


def ceiling_usage(
    snapshot: FinanceSnapshot,
    month: str,
    installments: Optional[Sequence[Installment]] = None,
    include_virtual: bool = False,
    policy: Optional[CardFallbackPolicy] = None,
) -> CeilingUsage:
    """
    Share of the month's limit used by classified spending.

    Installments due in the month are classified by the description of
    their purchase, bills by their own description. Only amounts
    matching a rule included in the limit count; without a limit the
    usage is 0.
    """
    if installments is None:
        installments = schedule_all(snapshot, policy=policy)

    amounts = [(i.description, i.value) for i in installments if i.due_month == month]
    amounts += [
        (e.description, e.amount)
        for e in non_card_expenses_for_month(snapshot, month, include_virtual=include_virtual)
    ]
    return _ceiling(
        month,
        snapshot.config.limit_for(month),
        snapshot.config.classification_rules,
        amounts,
    )


# =============================================================================
# THIRD PARTIES AND REIMBURSEMENTS
# =============================================================================

def reimbursement_references(
    incomes: Iterable[Income],
    prefix: Optional[str] = None,
) -> dict[str, list[str]]:
    """Installment id -> ids of the real reimbursement incomes citing it."""
    prefix = virtual_prefix(prefix)
    references: dict[str, list[str]] = {}
    for income in incomes:
        if income.income_type != IncomeType.REIMBURSEMENT:
            continue
        if not income.reimbursed_installment_id or is_virtual_id(income.id, prefix):
            continue
        references.setdefault(income.reimbursed_installment_id, []).append(income.id)
    return references


def pending_reimbursements(
    installments: Iterable[Installment],
    incomes: Iterable[Income],
    due_month: Optional[str] = None,
    audit_logger=None,
    prefix: Optional[str] = None,
) -> list[Installment]:
    """
    Third-party installments nobody has paid back yet.

    An installment cited by any reimbursement income is settled. Being
    cited more than once is tolerated and reported to the audit logger.
    """
    references = reimbursement_references(incomes, prefix)

    pending = []
    for installment in installments:
        if not installment.is_third_party:
            continue
        if due_month is not None and installment.due_month != due_month:
            continue

        cited_by = references.get(installment.id, [])
        if len(cited_by) > 1 and audit_logger:
            audit_logger.log_duplicate_reimbursement(installment.id, cited_by)
        if not cited_by:
            pending.append(installment)
    return pending


def reimbursement_draft(installment: Installment, on: Optional[date] = None) -> Income:
    """Pre-filled reimbursement income settling one installment."""
    person = f" {installment.person_name}" if installment.person_name else ""
    base = installment.description or "Card purchase"
    return Income(
        id="",
        description=f"Reimbursement{person} - {base} ({installment.label})",
        amount=installment.value,
        date=on or date.today(),
        income_type=IncomeType.REIMBURSEMENT,
        person_name=installment.person_name,
        reimbursed_installment_id=installment.id,
    )


def third_party_summary(
    snapshot: FinanceSnapshot,
    month: str,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> ThirdPartySummary:
    """Purchases made for others: totals, what is due and what is unpaid."""
    if installments is None:
        installments = schedule_all(snapshot, policy=policy, audit_logger=audit_logger)

    third_party = [i for i in installments if i.is_third_party]
    due_now = [i for i in third_party if i.due_month == month]

    by_person: dict[str, Decimal] = {}
    for installment in due_now:
        name = installment.person_name.strip()
        by_person[name] = by_person.get(name, ZERO) + installment.value

    return ThirdPartySummary(
        month=month,
        total_purchases=_total(
            e.amount for e in snapshot.card_expenses if e.is_third_party
        ),
        due_this_month=_total(i.value for i in due_now),
        due_future=_total(i.value for i in third_party if i.due_month > month),
        due_by_person=dict(sorted(by_person.items())),
        pending=pending_reimbursements(
            third_party, snapshot.incomes, due_month=month, audit_logger=audit_logger
        ),
    )


# =============================================================================
# MONTHLY SUMMARY
# =============================================================================

def summarize_month(
    snapshot: FinanceSnapshot,
    month: str,
    include_projected: bool = True,
    installments: Optional[Sequence[Installment]] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
    prefix: Optional[str] = None,
) -> MonthlySummary:
    """
    Headline numbers of a month.

    Expenses are the card statements due in the month plus bills dated
    in it. With include_projected, virtual recurring incomes and bills
    of the month are counted too.
    """
    prefix = virtual_prefix(prefix)
    if installments is None:
        installments = schedule_all(snapshot, policy=policy, audit_logger=audit_logger)
    due_now = [i for i in installments if i.due_month == month]

    incomes = entries_for_month(
        snapshot.incomes, month, include_virtual=include_projected, prefix=prefix
    )
    bills = non_card_expenses_for_month(
        snapshot, month, include_virtual=include_projected, prefix=prefix
    )

    card_total = _total(i.value for i in due_now)
    third_party_total = _total(i.value for i in due_now if i.is_third_party)
    pending = pending_reimbursements(
        installments, snapshot.incomes, due_month=month, audit_logger=audit_logger, prefix=prefix
    )

    ceiling = _ceiling(
        month,
        snapshot.config.limit_for(month),
        snapshot.config.classification_rules,
        [(i.description, i.value) for i in due_now] + [(e.description, e.amount) for e in bills],
    )

    return MonthlySummary(
        month=month,
        income_total=_total(i.amount for i in incomes),
        projected_income_total=_total(i.amount for i in incomes if is_virtual_id(i.id, prefix)),
        card_statements_total=card_total,
        non_card_expenses_total=_total(e.amount for e in bills),
        own_due_total=card_total - third_party_total,
        third_party_due_total=third_party_total,
        pending_reimbursement_total=_total(i.value for i in pending),
        ceiling=ceiling,
    )


# =============================================================================
# MONTH PICKER AND CARD LISTINGS
# =============================================================================

def available_months(
    snapshot: FinanceSnapshot,
    today: Optional[date] = None,
    policy: Optional[CardFallbackPolicy] = None,
    audit_logger=None,
) -> list[str]:
    """
    Months a filter should offer, ascending.

    Spans the current month, every expense and income month and every
    installment due month, plus the projection horizon when anything
    recurs. Gaps inside the span are filled. A span longer than the
    range cap keeps its most recent months and always the current one.
    """
    settings = get_settings().engine
    this_month = current_month(today)

    months = {this_month}
    months.update(e.month for e in snapshot.expenses)
    months.update(i.month for i in snapshot.incomes)
    months.update(i.due_month for i in schedule_all(snapshot, policy=policy))

    recurs = any(e.recurring for e in snapshot.expenses) or any(
        i.recurring for i in snapshot.incomes
    )
    if recurs:
        months.add(add_months(this_month, settings.projection_horizon_months))

    start, end = min(months), max(months)
    cap = settings.month_range_cap
    if months_between(start, end) + 1 > cap:
        if audit_logger:
            audit_logger.log_month_range_capped(start, end, cap)
        # Drop the oldest months first; the current month always stays
        start = max(start, add_months(end, -(cap - 1)))
        if this_month < start:
            start, end = this_month, add_months(this_month, cap - 1)
    return month_range(start, end, cap=cap)


def card_purchases(
    snapshot: FinanceSnapshot,
    card_id: str,
    month: Optional[str] = None,
    person: Optional[str] = None,
    order: SortOrder = SortOrder.DATE_DESC,
) -> CardPurchaseListing:
    """
    Purchases of one card, filtered by purchase month and by person.

    person=HOLDER keeps the cardholder's own purchases; any other name
    keeps that person's purchases.
    """
    purchases = [e for e in snapshot.card_expenses if e.card_id == card_id]

    if month:
        purchases = [e for e in purchases if e.month == month]

    if person == HOLDER:
        purchases = [e for e in purchases if not e.is_third_party]
    elif person:
        purchases = [e for e in purchases if e.person_name == person]

    purchases = sort_entries(purchases, order)
    return CardPurchaseListing(
        card_id=card_id,
        purchases=purchases,
        total_original=_total(e.amount for e in purchases),
        total_per_installment=_total(installment_value(e) for e in purchases),
    )


def card_filter_options(
    snapshot: FinanceSnapshot,
    card_id: str,
) -> tuple[list[str], list[str]]:
    """(purchase months most recent first, third-party names sorted)."""
    purchases = [e for e in snapshot.card_expenses if e.card_id == card_id]
    months = sorted({e.month for e in purchases}, reverse=True)
    people = sorted({e.person_name for e in purchases if e.is_third_party})
    return months, people
