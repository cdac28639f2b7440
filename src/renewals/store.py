"""In-memory renewal store for local-first use and tests.

Each :class:`RenewalStore` owns its own collection; there is no shared
module-level state, so every caller or test gets an isolated store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import date, timedelta
from typing import Any

from renewals.collection import calculate_stats
from renewals.dates import format_for_wire
from renewals.models import (
    RenewalKind,
    RenewalRecord,
    RenewalStats,
    RenewalStatus,
    ReminderType,
)
from renewals.status import EXPIRING_SOON_DAYS, derive_status, refresh_status, refresh_statuses

logger = logging.getLogger(__name__)

# Fields that never change once a record has been stored.
_IMMUTABLE_FIELDS = frozenset({"id", "owner_id"})


class RenewalStore:
    """Ordered collection of renewals with add/update/delete semantics.

    Parameters
    ----------
    records:
        Initial records, kept in the given order.
    today:
        Callable returning the reference date for status derivation.
    window_days:
        Size of the expiring-soon window.
    """

    def __init__(
        self,
        records: Iterable[RenewalRecord] = (),
        *,
        today: Callable[[], date] = date.today,
        window_days: int = EXPIRING_SOON_DAYS,
    ) -> None:
        self._records: list[RenewalRecord] = list(records)
        self._today = today
        self._window_days = window_days

    def __len__(self) -> int:
        return len(self._records)

    def _current(self, records: Iterable[RenewalRecord]) -> list[RenewalRecord]:
        return refresh_statuses(records, self._today(), window_days=self._window_days)

    def list_records(self) -> list[RenewalRecord]:
        """Every record, with derived statuses recomputed for today."""
        return self._current(self._records)

    def list_for_owner(self, owner_id: str) -> list[RenewalRecord]:
        return self._current(r for r in self._records if r.owner_id == owner_id)

    def list_by_status(self, status: RenewalStatus | str) -> list[RenewalRecord]:
        """Records whose current status is *status*.

        Raises ``ValueError`` for an unknown status.
        """
        wanted = RenewalStatus(status)
        return [r for r in self.list_records() if r.status == wanted]

    def get_record(self, record_id: str) -> RenewalRecord | None:
        for record in self._records:
            if record.id == record_id:
                return self._refresh(record)
        return None

    def stats(self) -> RenewalStats:
        return calculate_stats(self.list_records())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        taken = {r.id for r in self._records}
        candidate = len(self._records) + 1
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def _refresh(self, record: RenewalRecord) -> RenewalRecord:
        return refresh_status(record, self._today(), window_days=self._window_days)

    def add_record(self, record: RenewalRecord) -> RenewalRecord:
        """Store *record* under a new id with a status derived from its end date.

        A sticky or pinned status supplied on the record is kept.
        """
        stored = self._refresh(record.model_copy(update={"id": self._next_id()}))
        self._records.append(stored)
        logger.debug("Added renewal %s (%s)", stored.id, stored.name)
        return stored

    def update_record(
        self,
        record_id: str,
        patch: Mapping[str, Any] | RenewalRecord,
    ) -> RenewalRecord | None:
        """Merge *patch* over the stored record and return the result.

        *patch* is a mapping of canonical field names, or a record whose
        explicitly set fields are merged.  ``id`` and ``owner_id`` are never
        overwritten.  Unless the merged status is sticky or pinned it is
        re-derived from the merged end date, so a derived status sent by a
        client is never stored as-is.  A pin is dropped when the dates move
        without the status being changed along with them.

        Returns None when no record has *record_id*.
        """
        index = next((i for i, r in enumerate(self._records) if r.id == record_id), None)
        if index is None:
            return None

        if isinstance(patch, RenewalRecord):
            changes = {name: getattr(patch, name) for name in patch.model_fields_set}
        else:
            changes = dict(patch)

        ignored = _IMMUTABLE_FIELDS & changes.keys()
        if ignored:
            logger.debug("Ignoring immutable fields %s in update of %s", sorted(ignored), record_id)
            for name in ignored:
                changes.pop(name)

        for name in ("start_date", "end_date"):
            if changes.get(name) is not None:
                changes[name] = format_for_wire(changes[name])

        existing = self._records[index]
        merged = RenewalRecord.model_validate({**existing.model_dump(), **changes})

        dates_moved = (merged.start_date, merged.end_date) != (
            existing.start_date,
            existing.end_date,
        )
        if merged.status_pinned and dates_moved and merged.status == existing.status:
            logger.debug("Dates of renewal %s moved; unpinning status %s", record_id, merged.status)
            merged = merged.model_copy(update={"status_pinned": False})

        merged = self._refresh(merged)
        self._records[index] = merged
        return merged

    def delete_record(self, record_id: str) -> bool:
        """Remove the record with *record_id*; True when something was removed."""
        before = len(self._records)
        self._records = [r for r in self._records if r.id != record_id]
        return len(self._records) != before


def sample_renewals(today: date | None = None) -> list[RenewalRecord]:
    """Demo renewals positioned relative to *today* so every status appears."""
    today = today or date.today()

    def _record(
        owner_id: str,
        name: str,
        kind: RenewalKind,
        provider: str,
        started_days_ago: int,
        ends_in_days: int,
        cost: float,
        reminder_type: ReminderType,
        notes: str | None = None,
    ) -> RenewalRecord:
        end = today + timedelta(days=ends_in_days)
        return RenewalRecord(
            owner_id=owner_id,
            name=name,
            kind=kind,
            provider=provider,
            start_date=(today - timedelta(days=started_days_ago)).isoformat(),
            end_date=end.isoformat(),
            cost=cost,
            status=derive_status(end, today),
            reminder_type=reminder_type,
            notes=notes,
        )

    records = [
        _record(
            "2", "example.com", RenewalKind.DOMAIN, "GoDaddy", 200, 165, 12.99,
            ReminderType.EMAIL, "Primary website domain",
        ),
        _record(
            "2", "Norton 360", RenewalKind.ANTIVIRUS, "Norton", 340, 25, 89.99, ReminderType.BOTH
        ),
        _record(
            "2", "MyApp Hosting", RenewalKind.HOSTING, "AWS", 400, 10, 29.99,
            ReminderType.NOTIFICATION, "Company website hosting",
        ),
        _record(
            "1", "Office 365", RenewalKind.SOFTWARE, "Microsoft", 300, 65, 99.99, ReminderType.EMAIL
        ),
        _record(
            "1", "company-site.org", RenewalKind.DOMAIN, "Namecheap", 370, -5, 14.99,
            ReminderType.NOTIFICATION, "Need to renew ASAP",
        ),
    ]
    return [r.model_copy(update={"id": str(i)}) for i, r in enumerate(records, start=1)]
