"""Display formatting for values spliced into documents (en-US)."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

# Characters that would let a substituted value be re-scanned as a token.
_LIVE_SYNTAX = str.maketrans({"#": "＃", "{": "｛", "}": "｝"})


def neutralize(text: str) -> str:
    """Swap token delimiters for their full-width look-alikes."""
    return text.translate(_LIVE_SYNTAX)


def display(value: Any) -> str | None:
    """Coerce a record value to a display string; None or blank means absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_amount(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace("$", "").replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def format_currency(value: Any) -> str | None:
    amount = parse_amount(value)
    if amount is None:
        return None
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def parse_when(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_date(value: Any) -> str | None:
    """Short US date, e.g. ``1/15/2024``."""
    when = parse_when(value)
    if when is None:
        return None
    return f"{when.month}/{when.day}/{when.year}"


def format_datetime(value: Any) -> str | None:
    """US date and 12-hour time, e.g. ``1/15/2024, 3:04:05 PM``."""
    when = parse_when(value)
    if when is None:
        return None
    hour = when.hour % 12 or 12
    meridiem = "AM" if when.hour < 12 else "PM"
    return f"{format_date(when)}, {hour}:{when.minute:02d}:{when.second:02d} {meridiem}"
