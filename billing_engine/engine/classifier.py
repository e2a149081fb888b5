"""
Classification Matcher

Maps a free-text description to every rule having a keyword contained
in it. Matching is case-insensitive and non-exclusive; no match is an
empty list, never an error.
"""

from typing import Iterable

from billing_engine.models.finance import ClassificationRule, Expense


def _rule_matches(rule: ClassificationRule, normalized: str) -> bool:
    for keyword in rule.keywords:
        needle = keyword.strip().casefold()
        # Blank keywords would match every description
        if needle and needle in normalized:
            return True
    return False


def classify_description(
    description: str,
    rules: Iterable[ClassificationRule],
) -> list[ClassificationRule]:
    """All rules matching the description, in rule order."""
    if not description:
        return []
    normalized = description.casefold()
    return [rule for rule in rules if _rule_matches(rule, normalized)]


def classify_expenses(
    expenses: Iterable[Expense],
    rules: Iterable[ClassificationRule],
) -> list[Expense]:
    """Copies of the expenses with `classifications` filled in."""
    rules = list(rules)
    return [
        expense.model_copy(
            update={"classifications": classify_description(expense.description, rules)}
        )
        for expense in expenses
    ]


def counts_toward_limit(
    description: str,
    rules: Iterable[ClassificationRule],
) -> bool:
    """True when at least one matching rule is included in the ceiling."""
    return any(rule.included_in_limit for rule in classify_description(description, rules))
