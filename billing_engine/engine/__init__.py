"""
Billing and Projection Engine

Pure functions over a FinanceSnapshot. Nothing here touches the store
or keeps state between calls.
"""

from billing_engine.months import (
    InvalidMonthError,
    add_months,
    current_month,
    format_month,
    month_day,
    month_label,
    month_of,
    month_range,
    month_range_desc,
    months_between,
    parse_month,
)
from billing_engine.engine.classifier import (
    classify_description,
    classify_expenses,
    counts_toward_limit,
)
from billing_engine.engine.scheduler import (
    CardFallbackPolicy,
    competence_month,
    due_month_for,
    installment_value,
    resolve_card,
    schedule_all,
    schedule_installments,
)
from billing_engine.engine.projector import (
    entries_for_month,
    group_series,
    is_virtual_id,
    materialize,
    project_month,
    series_head,
    series_state,
    series_table,
    virtual_id,
    virtual_prefix,
)
from billing_engine.engine.aggregator import (
    HOLDER,
    available_months,
    card_filter_options,
    card_purchases,
    card_statement,
    ceiling_usage,
    group_statements,
    non_card_expenses_for_month,
    pending_reimbursements,
    reimbursement_draft,
    reimbursement_references,
    sort_entries,
    statement_items,
    statements_for_month,
    summarize_month,
    third_party_summary,
)

__all__ = [
    # Calendar
    "InvalidMonthError",
    "add_months",
    "current_month",
    "format_month",
    "month_day",
    "month_label",
    "month_of",
    "month_range",
    "month_range_desc",
    "months_between",
    "parse_month",
    # Classification
    "classify_description",
    "classify_expenses",
    "counts_toward_limit",
    # Scheduling
    "CardFallbackPolicy",
    "competence_month",
    "due_month_for",
    "installment_value",
    "resolve_card",
    "schedule_all",
    "schedule_installments",
    # Projection
    "entries_for_month",
    "group_series",
    "is_virtual_id",
    "materialize",
    "project_month",
    "series_head",
    "series_state",
    "series_table",
    "virtual_id",
    "virtual_prefix",
    # Aggregation
    "HOLDER",
    "available_months",
    "card_filter_options",
    "card_purchases",
    "card_statement",
    "ceiling_usage",
    "group_statements",
    "non_card_expenses_for_month",
    "pending_reimbursements",
    "reimbursement_draft",
    "reimbursement_references",
    "sort_entries",
    "statement_items",
    "statements_for_month",
    "summarize_month",
    "third_party_summary",
]
