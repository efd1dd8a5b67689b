# src/todostore/todos/views.py

"""
Read-side projections over a TodoSnapshot.

Everything here is pure: no database access, no mutation of the snapshot.
"""

from __future__ import annotations

import locale
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable

from .dates import date_range, today_key
from .models import CategoryKind, TodoItem, TodoSnapshot

CalendarView = dict[str, dict[int, list[TodoItem]]]


def _cmp(a: str, b: str) -> int:
    return (a > b) - (a < b)


def _title_cmp(a: str, b: str) -> int:
    """Locale-aware comparison (honours LC_COLLATE)."""
    return locale.strcoll(a, b)


def dated_category_ids(snapshot: TodoSnapshot) -> list[int]:
    return [c.id for c in snapshot.categories if c.kind is CategoryKind.DATED]


def date_span(snapshot: TodoSnapshot) -> list[str]:
    """Every calendar day from the earliest to the latest due date of dated items."""
    dates: set[str] = set()
    for category_id in dated_category_ids(snapshot):
        for item in snapshot.current.get(category_id, ()):
            if item.due_date:
                dates.add(item.due_date)

    if not dates:
        return []
    return date_range(min(dates), max(dates))


def calendar_todo(snapshot: TodoSnapshot) -> CalendarView:
    """
    date -> dated category id -> items due that day.

    Days inside the span with nothing due still get empty buckets for every
    dated category. Plain categories never appear.
    """
    dated_ids = dated_category_ids(snapshot)
    calendar: CalendarView = {day: {cid: [] for cid in dated_ids} for day in date_span(snapshot)}

    for category_id in dated_ids:
        for item in snapshot.current.get(category_id, ()):
            if not item.due_date:
                continue
            bucket = calendar.setdefault(item.due_date, {})
            bucket.setdefault(category_id, []).append(item)
    return calendar


def sort_by_date(
    items: Iterable[TodoItem],
    kind: CategoryKind,
    *,
    ascending: bool = True,
    today: str | None = None,
) -> list[TodoItem]:
    """
    Plain categories order by creation time, dated ones by due date with a
    missing due date standing in for today. Ties go to the title, always A-Z.
    """
    sign = 1 if ascending else -1
    fallback = today or today_key()

    def key_of(item: TodoItem) -> str:
        if kind is CategoryKind.PLAIN:
            return item.created_at
        return item.due_date or fallback

    def compare(a: TodoItem, b: TodoItem) -> int:
        primary = _cmp(key_of(a), key_of(b))
        if primary:
            return primary * sign
        return _title_cmp(a.title, b.title)

    return sorted(items, key=cmp_to_key(compare))


def sort_by_title(items: Iterable[TodoItem], *, ascending: bool = True) -> list[TodoItem]:
    """Title first, then due date (creation time when undated); both follow the direction."""
    sign = 1 if ascending else -1

    def compare(a: TodoItem, b: TodoItem) -> int:
        by_title = _title_cmp(a.title, b.title)
        if by_title:
            return sign if by_title > 0 else -sign
        return _cmp(a.due_date or a.created_at, b.due_date or b.created_at) * sign

    return sorted(items, key=cmp_to_key(compare))


@dataclass(slots=True)
class SortState:
    """
    Direction flags for the list screens.

    Each sort call flips its flag first, so the very first call sorts
    descending, the next one ascending again.
    """

    date_ascending: bool = True
    title_ascending: bool = True

    def next_date_direction(self) -> bool:
        self.date_ascending = not self.date_ascending
        return self.date_ascending

    def next_title_direction(self) -> bool:
        self.title_ascending = not self.title_ascending
        return self.title_ascending
