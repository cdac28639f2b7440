"""Calendar-date helpers shared by the reconciler, status derivation and filters.

Every function here is total: invalid or empty input degrades to a sentinel
(``"N/A"``, ``""``, ``0`` or ``False``) instead of raising.

Renewal dates carry no time-of-day.  A timestamp is reduced to the calendar
date it was written in (its own offset), never converted to local time first,
so ``2025-05-10T23:30:00-05:00`` stays on May 10.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

logger = logging.getLogger(__name__)

DISPLAY_FALLBACK = "N/A"

# Non-ISO layouts accepted on input (form values, already-displayed dates).
_EXTRA_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)


def parse_date(value: Any) -> date | None:
    """Return the calendar date for *value*, or None when it cannot be read."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _EXTRA_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def is_valid_date(value: Any) -> bool:
    return parse_date(value) is not None


def format_display(value: Any) -> str:
    """Format *value* as a short human date such as ``Jan 5, 2025``."""
    parsed = parse_date(value)
    if parsed is None:
        if value not in (None, ""):
            logger.debug("Cannot format %r for display", value)
        return DISPLAY_FALLBACK
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_for_wire(value: Any) -> str:
    """Format *value* as ``YYYY-MM-DD``; empty string when invalid."""
    parsed = parse_date(value)
    if parsed is None:
        if value not in (None, ""):
            logger.debug("Cannot format %r for the API", value)
        return ""
    return parsed.isoformat()


def days_remaining(end_date: Any, reference_date: Any = None) -> int:
    """Whole days from *reference_date* (default today) until *end_date*.

    Positive means the end date is in the future; zero or negative means it
    is due or overdue.  Returns 0 when either date is invalid.
    """
    end = parse_date(end_date)
    if end is None:
        return 0
    if reference_date is None:
        reference = date.today()
    else:
        reference = parse_date(reference_date)
        if reference is None:
            return 0
    return (end - reference).days
