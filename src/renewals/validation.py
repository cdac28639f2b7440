"""Form-level validation of renewal records before submission.

Errors are reported per field so the form can show each one next to its
input.  Nothing here touches the network.
"""

from __future__ import annotations

from typing import Any

from renewals.dates import parse_date
from renewals.models import RenewalRecord


class RenewalValidationError(ValueError):
    """Raised when a renewal fails validation; ``errors`` maps field to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(f"Invalid renewal: {summary}")


def validate_dates(start_date: Any, end_date: Any) -> dict[str, str]:
    """Check that both dates are present, readable and correctly ordered."""
    errors: dict[str, str] = {}
    start = parse_date(start_date)
    end = parse_date(end_date)

    if not start_date:
        errors["start_date"] = "Start date is required"
    elif start is None:
        errors["start_date"] = "Start date is not a valid date"

    if not end_date:
        errors["end_date"] = "End date is required"
    elif end is None:
        errors["end_date"] = "End date is not a valid date"
    elif start is not None and end <= start:
        errors["end_date"] = "End date must be after start date"

    return errors


def validate_renewal(record: RenewalRecord) -> dict[str, str]:
    """Return a field -> message map of problems; empty when *record* is valid."""
    errors: dict[str, str] = {}

    if not (record.name or "").strip():
        errors["name"] = "Name is required"
    if not (record.provider or "").strip():
        errors["provider"] = "Provider is required"

    errors.update(validate_dates(record.start_date, record.end_date))

    if record.cost is None or record.cost <= 0:
        errors["cost"] = "Cost must be greater than 0"

    return errors


def ensure_valid(record: RenewalRecord) -> RenewalRecord:
    errors = validate_renewal(record)
    if errors:
        raise RenewalValidationError(errors)
    return record
