"""Filtering, sorting and statistics over collections of renewals."""

from __future__ import annotations

import locale
import logging
import unicodedata
from collections.abc import Iterable, Sequence
from typing import Any, Literal

from renewals.dates import parse_date
from renewals.models import RenewalFilters, RenewalRecord, RenewalStats, RenewalStatus

logger = logging.getLogger(__name__)

SortKey = Literal["end_date", "name", "provider", "cost"]
SortDirection = Literal["asc", "desc"]

SORT_KEYS: tuple[str, ...] = ("end_date", "name", "provider", "cost")

_NO_CONSTRAINT = "all"


def _unconstrained(value: str | None) -> bool:
    return value is None or value == "" or value == _NO_CONSTRAINT


def _contains(haystack: str | None, needle: str) -> bool:
    return needle.casefold() in (haystack or "").casefold()


def _matches(record: RenewalRecord, filters: RenewalFilters) -> bool:
    if not _unconstrained(filters.kind) and record.kind != filters.kind:
        return False
    if not _unconstrained(filters.status) and record.status != filters.status:
        return False
    if filters.provider and not _contains(record.provider, filters.provider):
        return False
    if filters.search and not (
        _contains(record.name, filters.search) or _contains(record.provider, filters.search)
    ):
        return False

    date_range = filters.date_range
    if date_range is not None and (date_range.start is not None or date_range.end is not None):
        end = parse_date(record.end_date)
        if end is None:
            return False
        if date_range.start is not None and end < date_range.start:
            return False
        if date_range.end is not None and end > date_range.end:
            return False

    return True


def filter_renewals(
    records: Iterable[RenewalRecord],
    filters: RenewalFilters | None = None,
) -> list[RenewalRecord]:
    """Return the records matching every given criterion, in input order."""
    if filters is None:
        return list(records)
    return [r for r in records if _matches(r, filters)]


def _collation_key(text: str) -> tuple[str, str]:
    """Accent- and case-insensitive primary key, locale collation as tie-break.

    Stripping combining marks keeps "Émile" next to "emile" even under the
    C locale, where ``strxfrm`` orders by code point.
    """
    folded = unicodedata.normalize("NFKD", text.casefold())
    base = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return locale.strxfrm(base), locale.strxfrm(folded)


def _sort_value(record: RenewalRecord, key: str) -> Any:
    if key == "end_date":
        return parse_date(record.end_date)
    if key == "cost":
        return record.cost
    text = getattr(record, key)
    if text is None:
        return None
    return _collation_key(text)


def sort_renewals(
    records: Iterable[RenewalRecord],
    key: SortKey = "end_date",
    direction: SortDirection = "asc",
) -> list[RenewalRecord]:
    """Stable sort of *records* by *key*.

    Text keys compare ignoring case and accents, then by the collation of
    the current locale.  Records without a usable value for *key* go last in
    either direction.
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Invalid sort key {key!r}. Must be one of {SORT_KEYS}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Invalid sort direction {direction!r}. Must be 'asc' or 'desc'")

    keyed = [(_sort_value(r, key), r) for r in records]
    present = [pair for pair in keyed if pair[0] is not None]
    missing = [r for value, r in keyed if value is None]

    # sorted() keeps equal keys in input order even with reverse=True.
    present.sort(key=lambda pair: pair[0], reverse=direction == "desc")
    return [r for _, r in present] + missing


def calculate_stats(records: Sequence[RenewalRecord]) -> RenewalStats:
    """Aggregate status counts and total cost.

    Counts use each record's stored ``status`` as-is; refresh statuses first
    (see :func:`renewals.status.refresh_statuses`) for date-accurate counts.
    """
    active = expiring_soon = expired = 0
    total_cost = 0.0
    for record in records:
        if record.status == RenewalStatus.ACTIVE:
            active += 1
        elif record.status == RenewalStatus.EXPIRING_SOON:
            expiring_soon += 1
        elif record.status == RenewalStatus.EXPIRED:
            expired += 1
        total_cost += record.cost or 0.0

    return RenewalStats(
        active=active,
        expiring_soon=expiring_soon,
        expired=expired,
        total=len(records),
        total_cost=total_cost,
    )
