"""
Recurrence Projector

Projects "virtual" occurrences of recurring incomes and non-card
expenses into months that have no real entry yet.

A series is every real entry sharing one description (exact,
case-sensitive). Its head is the latest entry:
    head.recurring is True   -> ACTIVE, projected into every later month
    head.recurring is False  -> CLOSED, never projected again

A month is projected from the head as of that month (the latest entry
dated before it), so closing a series in June leaves the projections
of the months before June in place.

Virtual entries are display-only. Their ids are derived from the month
and the description, so the same (description, month) always yields
the same id and never collides with a store id. Confirming one creates
a real entry (see materialize) which becomes the new head.
"""

import re
from typing import Iterable, Optional, TypeVar, Union

from billing_engine.config import get_settings
from billing_engine.months import add_months, month_day, month_range
from billing_engine.models.finance import Expense, Income
from billing_engine.models.views import CellSource, SeriesCell, SeriesRow, SeriesState


Entry = TypeVar("Entry", Income, Expense)
AnyEntry = Union[Income, Expense]

_WHITESPACE = re.compile(r"\s")


def virtual_prefix(prefix: Optional[str] = None) -> str:
    """The given prefix, or the configured one when None."""
    return prefix or get_settings().engine.virtual_id_prefix


def _projectable(entry: AnyEntry) -> bool:
    # Card purchases recur through installments, not projections
    return not getattr(entry, "is_card_purchase", False)


def virtual_id(month: str, description: str, prefix: Optional[str] = None) -> str:
    """Reproducible id of the projection of `description` into `month`."""
    return f"{virtual_prefix(prefix)}{month}-{_WHITESPACE.sub('', description)}"


def is_virtual_id(entry_id: Optional[str], prefix: Optional[str] = None) -> bool:
    return bool(entry_id) and entry_id.startswith(virtual_prefix(prefix))


def group_series(
    entries: Iterable[Entry],
    prefix: Optional[str] = None,
) -> dict[str, list[Entry]]:
    """
    Real entries grouped by description.

    Groups keep first-appearance order; entries inside a group are in
    ascending date order (input order among equal dates).
    """
    prefix = virtual_prefix(prefix)
    groups: dict[str, list[Entry]] = {}
    for entry in entries:
        if not _projectable(entry) or is_virtual_id(entry.id, prefix):
            continue
        groups.setdefault(entry.description, []).append(entry)
    return {
        description: sorted(group, key=lambda e: e.date)
        for description, group in groups.items()
    }


def series_head(group: list[Entry]) -> Entry:
    """Latest entry of a series; the last one wins a date tie."""
    return sorted(group, key=lambda e: e.date)[-1]


def series_state(head: AnyEntry) -> SeriesState:
    return SeriesState.ACTIVE if head.recurring else SeriesState.CLOSED


def project_month(
    entries: Iterable[Entry],
    month: str,
    prefix: Optional[str] = None,
) -> list[Entry]:
    """
    Virtual entries for `month`.

    One per series whose head as of `month` (its latest entry dated in
    an earlier month) is recurring, when the series has no real entry
    in `month`. The projected day is that head's day, clamped to the
    last day of short months.
    """
    prefix = virtual_prefix(prefix)
    entries = list(entries)
    groups = group_series(entries, prefix)
    real_in_month = {
        description
        for description, group in groups.items()
        if any(e.month == month for e in group)
    }

    virtuals = []
    for description, group in groups.items():
        if description in real_in_month:
            continue
        earlier = [e for e in group if e.month < month]
        if not earlier:
            continue
        head = series_head(earlier)
        if not head.recurring:
            continue

        update = {
            "id": virtual_id(month, description, prefix),
            "date": month_day(month, head.date.day, clamp=True),
        }
        if isinstance(head, Expense):
            update["is_paid"] = False
        virtuals.append(head.model_copy(update=update))

    return virtuals


def entries_for_month(
    entries: Iterable[Entry],
    month: str,
    include_virtual: bool = True,
    prefix: Optional[str] = None,
) -> list[Entry]:
    """Real entries dated in `month` followed by its virtual entries."""
    entries = list(entries)
    real = [e for e in entries if e.month == month]
    if not include_virtual:
        return real
    prefix = virtual_prefix(prefix)
    return real + project_month(entries, month, prefix=prefix)


def materialize(entry: Entry) -> Entry:
    """
    Real entry to create when a virtual one is confirmed.

    Same values, no id (the store assigns one) and recurring=True so
    the chain continues from it.
    """
    update = {"id": "", "recurring": True}
    if isinstance(entry, Expense):
        update["is_paid"] = False
    return entry.model_copy(update=update)


def series_table(
    entries: Iterable[Entry],
    start_month: str,
    horizon: Optional[int] = None,
    prefix: Optional[str] = None,
) -> list[SeriesRow]:
    """
    Projection table of every series that was ever recurring.

    One row per description, one cell per month from start_month over
    `horizon` months: the real amount, the projected amount, or nothing.
    """
    entries = list(entries)
    settings = get_settings().engine
    horizon = horizon or settings.projection_horizon_months
    prefix = prefix or settings.virtual_id_prefix
    months = month_range(start_month, add_months(start_month, horizon - 1), cap=horizon)

    projections = {month: project_month(entries, month, prefix=prefix) for month in months}

    rows = []
    for description, group in group_series(entries, prefix).items():
        if not any(e.recurring for e in group):
            continue

        head = series_head(group)
        cells = []
        for month in months:
            real = [e for e in group if e.month == month]
            if real:
                cells.append(SeriesCell(
                    month=month,
                    source=CellSource.REAL,
                    amount=sum(e.amount for e in real),
                    entry_id=real[0].id,
                ))
                continue

            virtual = next(
                (v for v in projections[month] if v.description == description),
                None,
            )
            if virtual is not None:
                cells.append(SeriesCell(
                    month=month,
                    source=CellSource.VIRTUAL,
                    amount=virtual.amount,
                    entry_id=virtual.id,
                ))
            else:
                cells.append(SeriesCell(month=month))

        rows.append(SeriesRow(
            description=description,
            state=series_state(head),
            head_id=head.id,
            head_month=head.month,
            cells=cells,
        ))

    return rows
