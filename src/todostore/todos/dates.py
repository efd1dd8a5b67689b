# src/todostore/todos/dates.py

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_TEXT = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def now_iso() -> str:
    """UTC timestamp like 2025-06-01T09:30:00.123Z (sortable as text)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_date_key(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def today_key() -> str:
    return to_date_key(date.today())


def weekday_text(value: date) -> str:
    return WEEKDAY_TEXT[value.weekday()]


def _parse_datetime(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _utc_date(value: datetime) -> date:
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(timezone.utc).date()


def normalize_date_only(value: Any) -> str | None:
    """
    Normalize a due-date input to YYYY-MM-DD.

    Accepts date/datetime objects, plain YYYY-MM-DD text and ISO timestamps.
    Timestamps that carry an offset are converted to UTC before the date is
    taken; naive ones keep their own calendar day.
    Returns None for blanks and for anything that is not a real calendar date
    (e.g. 2025-02-30).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_date_key(_utc_date(value))
    if isinstance(value, date):
        return to_date_key(value)

    raw = str(value).strip()
    if not raw:
        return None

    if _DATE_ONLY_RE.match(raw):
        try:
            return to_date_key(date.fromisoformat(raw))
        except ValueError:
            return None

    parsed = _parse_datetime(raw)
    if parsed is None:
        return None
    return to_date_key(_utc_date(parsed))


def normalize_datetime(value: Any) -> str:
    """ISO timestamp for value, or "now" when it cannot be parsed."""
    if value is None:
        return now_iso()
    parsed = _parse_datetime(str(value).strip())
    if parsed is None:
        return now_iso()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (
        parsed.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def date_range(start: str, end: str) -> list[str]:
    """Inclusive list of YYYY-MM-DD keys from start to end."""
    first = date.fromisoformat(start)
    last = date.fromisoformat(end)
    out: list[str] = []
    day = first
    while day <= last:
        out.append(to_date_key(day))
        day += timedelta(days=1)
    return out
