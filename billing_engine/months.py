"""
Calendar Arithmetic on "YYYY-MM" Month Strings

Months travel through the engine as zero-padded "YYYY-MM" strings so
that string comparison equals chronological comparison. Everything
here is pure.
"""

import calendar
from datetime import date
from typing import Optional


class InvalidMonthError(ValueError):
    """Month string is not a zero-padded YYYY-MM value."""
    pass


DEFAULT_RANGE_CAP = 120


def parse_month(month: str) -> tuple[int, int]:
    """Split "YYYY-MM" into (year, month 1-12)."""
    try:
        year_part, month_part = month.split("-")
        year, month_number = int(year_part), int(month_part)
    except (AttributeError, ValueError):
        raise InvalidMonthError(f"Invalid month: {month!r}. Expected YYYY-MM")

    if len(year_part) != 4 or len(month_part) != 2 or not 1 <= month_number <= 12:
        raise InvalidMonthError(f"Invalid month: {month!r}. Expected YYYY-MM")

    return year, month_number


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_of(day: date) -> str:
    """Month a date falls in."""
    return format_month(day.year, day.month)


def current_month(today: Optional[date] = None) -> str:
    return month_of(today or date.today())


def add_months(month: str, n: int) -> str:
    """
    Shift a month by n whole months, carrying the year.

    Works on a 0-11 month index. Floor division keeps the index in
    range for negative shifts, borrowing whole years as needed.
    """
    year, month_number = parse_month(month)
    index = month_number - 1 + n

    year += index // 12
    index = index % 12

    return format_month(year, index + 1)


def months_between(start: str, end: str) -> int:
    """Signed number of months from start to end."""
    start_year, start_month = parse_month(start)
    end_year, end_month = parse_month(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def month_range(
    start: str,
    end: str,
    cap: int = DEFAULT_RANGE_CAP,
) -> list[str]:
    """
    Inclusive ascending months from start to end.

    start > end is a degenerate range and yields [start].
    At most `cap` months are produced.
    """
    if start > end:
        return [start]

    months = []
    cursor = start
    while cursor <= end and len(months) < cap:
        months.append(cursor)
        cursor = add_months(cursor, 1)
    return months


def month_range_desc(
    start: str,
    end: str,
    cap: int = DEFAULT_RANGE_CAP,
) -> list[str]:
    """Same months as month_range, most recent first (for pickers)."""
    return list(reversed(month_range(start, end, cap=cap)))


def month_label(month: str) -> str:
    """Display label: "2024-03" becomes "03/2024"."""
    if not month:
        return ""
    year, month_number = parse_month(month)
    return f"{month_number:02d}/{year:04d}"


def days_in_month(month: str) -> int:
    year, month_number = parse_month(month)
    return calendar.monthrange(year, month_number)[1]


def month_day(month: str, day: int, clamp: bool = True) -> date:
    """
    Date for a day of a month.

    With clamp, days past the end of the month land on its last day
    (31 in February gives the 28th or 29th). Without it an impossible
    day raises ValueError from datetime.
    """
    year, month_number = parse_month(month)
    if clamp:
        day = max(1, min(day, days_in_month(month)))
    return date(year, month_number, day)
