"""
Tests for month-string calendar arithmetic.
"""

import ast
import inspect

import pytest
from datetime import date

from billing_engine import months

from billing_engine.months import (
    InvalidMonthError,
    add_months,
    current_month,
    days_in_month,
    format_month,
    month_day,
    month_label,
    month_of,
    month_range,
    month_range_desc,
    months_between,
    parse_month,
)


class TestParsing:
    """Tests for parsing and formatting months."""

    def test_parse_month(self):
        """Test splitting a month into year and month number."""
        assert parse_month("2024-03") == (2024, 3)

    @pytest.mark.parametrize("bad", ["2024-3", "2024-13", "2024-00", "24-03", "march", "", None])
    def test_parse_month_rejects_malformed(self, bad):
        """Test that malformed months raise InvalidMonthError."""
        with pytest.raises(InvalidMonthError):
            parse_month(bad)

    def test_invalid_month_is_a_value_error(self):
        """Test that callers catching ValueError also catch bad months."""
        with pytest.raises(ValueError):
            add_months("nope", 1)

    def test_format_and_month_of(self):
        """Test zero padding and the month of a date."""
        assert format_month(987, 1) == "0987-01"
        assert month_of(date(2024, 11, 30)) == "2024-11"

    def test_current_month(self):
        """Test that the current month can be pinned with today."""
        assert current_month(date(2025, 2, 14)) == "2025-02"


class TestAddMonths:
    """Tests for add_months."""

    def test_forward_within_year(self):
        """Test a plain forward shift."""
        assert add_months("2024-03", 2) == "2024-05"

    def test_forward_carries_year(self):
        """Test that December plus one is January of the next year."""
        assert add_months("2024-12", 1) == "2025-01"
        assert add_months("2024-11", 14) == "2026-01"

    def test_backward_borrows_year(self):
        """Test negative shifts across year boundaries."""
        assert add_months("2024-01", -1) == "2023-12"
        assert add_months("2024-03", -15) == "2022-12"
        assert add_months("2024-01", -24) == "2022-01"

    def test_zero_shift(self):
        """Test that a zero shift is the identity."""
        assert add_months("2024-07", 0) == "2024-07"

    def test_months_between(self):
        """Test the signed distance between months."""
        assert months_between("2024-11", "2025-02") == 3
        assert months_between("2025-02", "2024-11") == -3


class TestMonthRange:
    """Tests for month ranges."""

    def test_inclusive_ascending(self):
        """Test that both ends are included in ascending order."""
        assert month_range("2024-11", "2025-02") == ["2024-11", "2024-12", "2025-01", "2025-02"]

    def test_single_month(self):
        """Test a range from a month to itself."""
        assert month_range("2024-05", "2024-05") == ["2024-05"]

    def test_reversed_bounds_yield_start(self):
        """Test that start after end yields just the start month."""
        assert month_range("2024-05", "2024-01") == ["2024-05"]

    def test_range_is_capped(self):
        """Test that no more than cap months are produced."""
        months = month_range("2000-01", "2100-01", cap=120)
        assert len(months) == 120
        assert months[-1] == "2009-12"

    def test_descending(self):
        """Test the most-recent-first variant."""
        assert month_range_desc("2024-01", "2024-03") == ["2024-03", "2024-02", "2024-01"]


class TestDays:
    """Tests for labels and day placement."""

    def test_month_label(self):
        """Test the MM/YYYY display label."""
        assert month_label("2024-03") == "03/2024"
        assert month_label("") == ""

    def test_days_in_month(self):
        """Test month lengths including leap years."""
        assert days_in_month("2024-02") == 29
        assert days_in_month("2023-02") == 28
        assert days_in_month("2024-04") == 30

    def test_month_day_clamps(self):
        """Test that impossible days land on the last day of the month."""
        assert month_day("2024-02", 31) == date(2024, 2, 29)
        assert month_day("2023-02", 30) == date(2023, 2, 28)
        assert month_day("2024-04", 31) == date(2024, 4, 30)
        assert month_day("2024-05", 31) == date(2024, 5, 31)

    def test_month_day_without_clamp(self):
        """Test that an impossible day raises when clamping is off."""
        with pytest.raises(ValueError):
            month_day("2024-02", 31, clamp=False)


class TestModule:
    """Tests for the calendar module itself."""

    def test_imports_nothing_from_the_package(self):
        """Test that models and engine can both import it at module level."""
        tree = ast.parse(inspect.getsource(months))
        imported = [n.module for n in ast.walk(tree) if isinstance(n, ast.ImportFrom)]
        imported += [a.name for n in ast.walk(tree) if isinstance(n, ast.Import) for a in n.names]

        assert imported
        assert not any(name.startswith("billing_engine") for name in imported)

    def test_views_use_the_same_add_months(self):
        """Test that installment due months come from this module."""
        from billing_engine.models import views

        assert views.add_months is add_months


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
