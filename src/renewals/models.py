"""Pydantic models for renewal records, audit entries, statistics and results.

The canonical :class:`RenewalRecord` is deliberately permissive: every field
has a default so that any structurally odd backend payload can be held
without raising.  Required-field checks live in :mod:`renewals.validation`.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class RenewalKind(enum.StrEnum):
    """Category of the tracked item."""

    DOMAIN = "domain"
    ANTIVIRUS = "antivirus"
    HOSTING = "hosting"
    SOFTWARE = "software"
    OTHER = "other"


class RenewalStatus(enum.StrEnum):
    """Lifecycle status of a renewal."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring-soon"
    EXPIRED = "expired"
    PENDING = "pending"
    CANCELED = "canceled"

    @property
    def is_sticky(self) -> bool:
        """True for statuses that only an explicit user action may change."""
        return self in (RenewalStatus.PENDING, RenewalStatus.CANCELED)


class ReminderType(enum.StrEnum):
    """Notification channel chosen for expiry reminders."""

    EMAIL = "email"
    NOTIFICATION = "notification"
    BOTH = "both"
    NONE = "none"


# Sent with an update whose audit entry the caller posts itself.
CLIENT_AUDIT_HEADER = "X-Renewals-Client-Audit"


class LogAction(enum.StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    RENEWED = "renewed"


class RenewalRecord(BaseModel):
    """A tracked subscription, license, hosting plan or domain.

    ``start_date``/``end_date`` hold ``YYYY-MM-DD`` strings; an unparseable
    source date is kept as ``""`` and an absent one as None.  ``extra`` keeps
    unknown wire keys so they survive a round trip.

    ``status_pinned`` is True when a derivable status was chosen explicitly
    through a status change; such a status is kept until the dates move.
    """

    id: str | None = None
    owner_id: str | None = None
    name: str | None = None
    kind: RenewalKind | None = None
    provider: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    cost: float | None = None
    status: RenewalStatus | None = None
    status_pinned: bool | None = None
    notes: str | None = None
    reminder_days_before: int | None = None
    reminder_type: ReminderType | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class LogChange(BaseModel):
    """One field-level change recorded in an audit entry."""

    field: str
    old_value: str | int | float | None = None
    new_value: str | int | float | None = None


class RenewalLogEntry(BaseModel):
    """Audit-trail entry produced by the backend for a renewal mutation."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    renewal_id: str
    action: LogAction
    performed_by: str
    timestamp: str
    service_name: str | None = None
    user_email: str | None = None
    changes: list[LogChange] | None = None
    notes: str | None = None


class RenewalStats(BaseModel):
    """Status counts and summed cost over a set of renewals."""

    model_config = ConfigDict(populate_by_name=True)

    active: int = 0
    expiring_soon: int = Field(default=0, alias="expiringSoon")
    expired: int = 0
    total: int = 0
    total_cost: float = Field(default=0.0, alias="totalCost")


class DateRange(BaseModel):
    """Inclusive bounds applied to a renewal's end date."""

    start: date | None = None
    end: date | None = None


class RenewalFilters(BaseModel):
    """Criteria for :func:`renewals.collection.filter_renewals`.

    Absent criteria impose no constraint; ``"all"`` does the same for
    ``kind`` and ``status``.
    """

    kind: str | None = None
    status: str | None = None
    provider: str | None = None
    search: str | None = None
    date_range: DateRange | None = None


class ApiResult(BaseModel, Generic[T]):
    """Uniform outcome of a service operation.

    ``errors`` maps field names to messages when client-side validation
    blocked the call before it reached the network.
    """

    data: T
    success: bool
    message: str | None = None
    errors: dict[str, str] = Field(default_factory=dict)
