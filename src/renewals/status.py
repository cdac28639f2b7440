"""Status derivation for renewals.

Three statuses follow from the end date alone:

- ``expired``: zero or fewer days remain
- ``expiring-soon``: 1 to 30 days remain (both bounds inclusive)
- ``active``: more than 30 days remain

``pending`` and ``canceled`` cannot be derived.  They are sticky: once set by
an explicit user action they survive date edits and re-derivation until the
user changes the status again.

An explicit status change may also pick one of the derivable statuses, for
example marking a renewal ``expired`` ahead of its end date.  That choice is
pinned and survives re-derivation until the record's dates change.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from renewals.dates import days_remaining, format_for_wire
from renewals.models import RenewalRecord, RenewalStatus
from renewals.validation import RenewalValidationError, validate_dates

logger = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 30


def derive_status(
    end_date: Any,
    reference_date: date | str | None = None,
    *,
    window_days: int = EXPIRING_SOON_DAYS,
) -> RenewalStatus:
    """Classify a renewal by the days left until *end_date*.

    An unreadable end date counts as zero days remaining and so derives
    ``expired``.
    """
    remaining = days_remaining(end_date, reference_date)
    if remaining <= 0:
        return RenewalStatus.EXPIRED
    if remaining <= window_days:
        return RenewalStatus.EXPIRING_SOON
    return RenewalStatus.ACTIVE


def resolve_status(
    record: RenewalRecord,
    reference_date: date | str | None = None,
    *,
    window_days: int = EXPIRING_SOON_DAYS,
) -> RenewalStatus:
    """Return the status *record* should show.

    A sticky or pinned status is kept; anything else is derived.
    """
    if record.status is not None and (record.status.is_sticky or record.status_pinned):
        return record.status
    return derive_status(record.end_date, reference_date, window_days=window_days)


def refresh_status(
    record: RenewalRecord,
    reference_date: date | str | None = None,
    *,
    window_days: int = EXPIRING_SOON_DAYS,
) -> RenewalRecord:
    """Return *record* with its status recomputed from its end date."""
    status = resolve_status(record, reference_date, window_days=window_days)
    if status == record.status:
        return record
    return record.model_copy(update={"status": status})


def refresh_statuses(
    records: Iterable[RenewalRecord],
    reference_date: date | str | None = None,
    *,
    window_days: int = EXPIRING_SOON_DAYS,
) -> list[RenewalRecord]:
    if reference_date is None:
        reference_date = date.today()
    return [refresh_status(r, reference_date, window_days=window_days) for r in records]


def apply_status_change(
    record: RenewalRecord,
    status: RenewalStatus | str,
    *,
    start_date: Any = None,
    end_date: Any = None,
    reference_date: date | str | None = None,
    window_days: int = EXPIRING_SOON_DAYS,
) -> RenewalRecord:
    """Apply an explicit, user-chosen status to *record*.

    Dates supplied with the change (the renewal flow) replace the stored
    ones.  The resulting date pair must satisfy ``end_date > start_date``.

    A derivable status that differs from what the resulting dates derive is
    pinned (``status_pinned``) so that re-derivation does not undo the
    choice.  Choosing the derived status clears any earlier pin.

    Raises
    ------
    RenewalValidationError
        When the status is unknown or the resulting dates are invalid.
    """
    try:
        new_status = RenewalStatus(status)
    except ValueError:
        raise RenewalValidationError({"status": f"Unknown status {status!r}"}) from None

    update: dict[str, Any] = {"status": new_status}
    if start_date is not None:
        update["start_date"] = format_for_wire(start_date)
    if end_date is not None:
        update["end_date"] = format_for_wire(end_date)

    if len(update) > 1:
        errors = validate_dates(
            update.get("start_date", record.start_date),
            update.get("end_date", record.end_date),
        )
        if errors:
            raise RenewalValidationError(errors)

    derived = derive_status(
        update.get("end_date", record.end_date), reference_date, window_days=window_days
    )
    update["status_pinned"] = not new_status.is_sticky and new_status != derived

    logger.debug("Status of renewal %s changed %s -> %s", record.id, record.status, new_status)
    return record.model_copy(update=update)
