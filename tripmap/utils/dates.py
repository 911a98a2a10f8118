"""
Calendar date helpers for the ``YYYY-MM-DD`` wire format.

Dates are plain local calendar dates. They are never routed through
timezone-aware datetimes, so a trip starting 2026-01-01 stays on that day
in every timezone.
"""

import re
from datetime import date, datetime
from typing import Any, Optional

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: Any, field_name: str) -> Optional[date]:
    """
    Parse a wire date; blank values yield None.

    Raises:
        ValueError: If the value is not a valid ``YYYY-MM-DD`` calendar date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if not _DATE_RE.match(text):
        raise ValueError(f"Invalid date for {field_name}: '{value}' (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date for {field_name}: '{value}' (expected YYYY-MM-DD)") from None


def format_date(value: Optional[date]) -> Optional[str]:
    """Render a date in wire format; None passes through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()
