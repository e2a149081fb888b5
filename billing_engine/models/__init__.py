"""
Data Models Package

Pydantic models for the snapshot the engine reads, the views it
returns and the audit events it emits.
"""

from billing_engine.models.finance import (
    ClassificationRule,
    CreditCard,
    Expense,
    ExpenseType,
    FinanceConfig,
    FinanceSnapshot,
    Income,
    IncomeType,
    MonthlyLimit,
    MonthStr,
)
from billing_engine.models.views import (
    CardPurchaseListing,
    CardStatement,
    CeilingUsage,
    CellSource,
    Installment,
    MonthlyOverview,
    MonthlySummary,
    SeriesCell,
    SeriesRow,
    SeriesState,
    SortOrder,
    StatementItem,
    StatementKind,
    ThirdPartySummary,
)
from billing_engine.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from billing_engine.models.audit import (
    EngineEvent,
    EngineEventBuilder,
    EngineEventType,
    EventSeverity,
)

__all__ = [
    # Snapshot models
    "ClassificationRule",
    "CreditCard",
    "Expense",
    "ExpenseType",
    "FinanceConfig",
    "FinanceSnapshot",
    "Income",
    "IncomeType",
    "MonthlyLimit",
    "MonthStr",
    # Derived views
    "CardPurchaseListing",
    "CardStatement",
    "CeilingUsage",
    "CellSource",
    "Installment",
    "MonthlyOverview",
    "MonthlySummary",
    "SeriesCell",
    "SeriesRow",
    "SeriesState",
    "SortOrder",
    "StatementItem",
    "StatementKind",
    "ThirdPartySummary",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "EngineEvent",
    "EngineEventBuilder",
    "EngineEventType",
    "EventSeverity",
]
