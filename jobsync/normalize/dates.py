"""Timestamp parsing shared by the scoring and status modules.

Besides ISO-8601, the day-first formats found on Personal Data Sheets
are accepted: ``15-01-2020``, ``15/01/2020``, ``15.01.2020``,
``15012020`` and month names (``Jan 15, 2020``, ``15 January 2020``).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_OPEN_ENDED = {"present", "current", "now"}

_MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})$")
_YEAR_FIRST_RE = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
_COMPACT_RE = re.compile(r"^(\d{2})(\d{2})(\d{4})$")
_MONTH_DAY_YEAR_RE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$", re.IGNORECASE)
_DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]+)\.?,?\s+(\d{4})$", re.IGNORECASE)


def _build_date(value: Any, year: str, month: int, day: str) -> datetime:
    try:
        return datetime(int(year), month, int(day))
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp {value!r}") from exc


def _month(value: Any, name: str) -> int:
    month = _MONTHS.get(name.lower())
    if month is None:
        raise ValueError(f"Invalid timestamp {value!r}")
    return month


def _parse_text(value: Any, text: str) -> datetime:
    text = re.sub(r"\s+", " ", text)
    m = _DAY_FIRST_RE.match(text)
    if m:
        return _build_date(value, m.group(3), int(m.group(2)), m.group(1))
    m = _YEAR_FIRST_RE.match(text)
    if m:
        return _build_date(value, m.group(1), int(m.group(2)), m.group(3))
    m = _COMPACT_RE.match(text)
    if m:
        return _build_date(value, m.group(3), int(m.group(2)), m.group(1))
    m = _MONTH_DAY_YEAR_RE.match(text)
    if m:
        return _build_date(value, m.group(3), _month(value, m.group(1)), m.group(2))
    m = _DAY_MONTH_YEAR_RE.match(text)
    if m:
        return _build_date(value, m.group(3), _month(value, m.group(2)), m.group(1))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp {value!r}") from exc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a date string, date or datetime into an aware UTC datetime.

    ``None`` and the empty string give ``None``.  Naive values are taken
    to be UTC.  Numeric dates are read day first (``01-02-2020`` is
    1 February).

    Raises:
        ValueError: for anything that is not a recognisable timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        dt = _parse_text(value, text)
    else:
        raise ValueError(f"Invalid timestamp {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_open_ended(value: Any) -> bool:
    """True for end dates such as "Present" that mean "still ongoing"."""
    return isinstance(value, str) and value.strip().lower() in _OPEN_ENDED
