"""Renewal endpoints of the stand-in backend.

Serves the same routes as the production API from an in-memory
:class:`~renewals.store.RenewalStore`.  Request bodies are accepted in either
wire shape; responses use the ``{data, success, message}`` envelope with the
legacy key set.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from renewals.api.middleware import RenewalNotFoundError
from renewals.api.models import Envelope, LogEntryRequest
from renewals.dates import format_for_wire
from renewals.models import (
    CLIENT_AUDIT_HEADER,
    LogAction,
    LogChange,
    RenewalLogEntry,
    RenewalRecord,
)
from renewals.schema import to_canonical, to_wire
from renewals.store import RenewalStore
from renewals.validation import RenewalValidationError, validate_renewal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/renewals", tags=["renewals"])

_SYSTEM_USER = "system"
_AUDITED_FIELDS = (
    "name",
    "kind",
    "provider",
    "start_date",
    "end_date",
    "cost",
    "status",
    "notes",
    "reminder_days_before",
    "reminder_type",
)
_PATCHABLE_FIELDS = (*_AUDITED_FIELDS, "status_pinned")


@dataclass
class BackendState:
    """Everything the stand-in backend keeps between requests."""

    store: RenewalStore
    tokens: dict[str, str] | None = None
    logs: list[RenewalLogEntry] = field(default_factory=list)
    _log_ids: itertools.count = field(default_factory=lambda: itertools.count(1), init=False)

    def record_log(
        self,
        renewal: RenewalRecord,
        action: LogAction,
        performed_by: str,
        *,
        changes: list[LogChange] | None = None,
        notes: str | None = None,
        timestamp: str | None = None,
    ) -> RenewalLogEntry:
        entry = RenewalLogEntry(
            id=str(next(self._log_ids)),
            renewal_id=renewal.id or "",
            service_name=renewal.name,
            action=action,
            performed_by=performed_by,
            timestamp=timestamp or datetime.now(UTC).isoformat(),
            changes=changes or None,
            notes=notes,
        )
        self.logs.append(entry)
        return entry


def get_state(request: Request) -> BackendState:
    return request.app.state.backend


def current_user(request: Request, state: BackendState = Depends(get_state)) -> str | None:
    """Resolve the bearer token to a user id.

    Without configured tokens every request is anonymous (None).
    """
    if state.tokens is None:
        return None
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    user_id = state.tokens.get(token) if scheme.lower() == "bearer" else None
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthenticated")
    return user_id


def _wire(record: RenewalRecord) -> dict[str, Any]:
    return to_wire(record, "legacy")


def _get_or_404(state: BackendState, renewal_id: str) -> RenewalRecord:
    record = state.store.get_record(renewal_id)
    if record is None:
        raise RenewalNotFoundError(renewal_id)
    return record


def _changes(before: RenewalRecord, after: RenewalRecord) -> list[LogChange]:
    changes: list[LogChange] = []
    for name in _AUDITED_FIELDS:
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            changes.append(
                LogChange(
                    field=name,
                    old_value=getattr(old, "value", old),
                    new_value=getattr(new, "value", new),
                )
            )
    return changes


# ---------------------------------------------------------------------------
# Reads (fixed paths are declared before /{renewal_id})
# ---------------------------------------------------------------------------


@router.get("")
async def list_renewals(
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    return Envelope(data=[_wire(r) for r in state.store.list_records()])


@router.get("/user")
async def list_user_renewals(
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    """Renewals of the authenticated user; all renewals when auth is off."""
    records = state.store.list_records() if user_id is None else state.store.list_for_owner(user_id)
    return Envelope(data=[_wire(r) for r in records])


@router.get("/statistics")
async def renewal_statistics(
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    return Envelope(data=state.store.stats().model_dump(by_alias=True))


@router.get("/status/{status}")
async def list_by_status(
    status: str,
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    try:
        records = state.store.list_by_status(status)
    except ValueError:
        raise ValueError(f"Unknown status {status!r}") from None
    return Envelope(data=[_wire(r) for r in records])


@router.get("/{renewal_id}")
async def get_renewal(
    renewal_id: str,
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    return Envelope(data=_wire(_get_or_404(state, renewal_id)))


@router.get("/{renewal_id}/logs")
async def list_logs(
    renewal_id: str,
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    entries = [e for e in state.logs if e.renewal_id == renewal_id]
    return Envelope(data=[e.model_dump(mode="json", exclude_none=True) for e in entries])


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_renewal(
    payload: dict[str, Any] = Body(...),
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    record = to_canonical(payload)
    errors = validate_renewal(record)
    if errors:
        raise RenewalValidationError(errors)
    if user_id is not None:
        record = record.model_copy(update={"owner_id": user_id})

    stored = state.store.add_record(record)
    state.record_log(stored, LogAction.CREATED, user_id or _SYSTEM_USER)
    logger.info("Created renewal %s", stored.id)
    return Envelope(data=_wire(stored), message="Renewal created successfully")


async def _update(
    renewal_id: str,
    payload: dict[str, Any],
    state: BackendState,
    user_id: str | None,
    *,
    client_audits: bool = False,
) -> Envelope:
    before = _get_or_404(state, renewal_id)
    incoming = to_canonical(payload)
    patch: dict[str, Any] = {
        name: getattr(incoming, name)
        for name in _PATCHABLE_FIELDS
        if getattr(incoming, name) is not None
    }
    if incoming.extra:
        patch["extra"] = {**before.extra, **incoming.extra}
    candidate = before.model_copy(update=patch)
    errors = validate_renewal(candidate)
    if errors:
        raise RenewalValidationError(errors)

    after = state.store.update_record(renewal_id, patch)
    if after is None:
        raise RenewalNotFoundError(renewal_id)

    if client_audits:
        logger.debug("Update of %s is audited by the caller", renewal_id)
    else:
        changes = _changes(before, after)
        action = (
            LogAction.STATUS_CHANGED
            if [c.field for c in changes] == ["status"]
            else LogAction.UPDATED
        )
        state.record_log(after, action, user_id or _SYSTEM_USER, changes=changes)
    return Envelope(data=_wire(after), message="Renewal updated successfully")


def _client_audits(request: Request) -> bool:
    return request.headers.get(CLIENT_AUDIT_HEADER, "").lower() in ("1", "true")


@router.put("/{renewal_id}")
async def replace_renewal(
    renewal_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    return await _update(
        renewal_id, payload, state, user_id, client_audits=_client_audits(request)
    )


@router.patch("/{renewal_id}")
async def patch_renewal(
    renewal_id: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    return await _update(
        renewal_id, payload, state, user_id, client_audits=_client_audits(request)
    )


@router.delete("/{renewal_id}")
async def delete_renewal(
    renewal_id: str,
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    record = _get_or_404(state, renewal_id)
    if not state.store.delete_record(renewal_id):
        raise RenewalNotFoundError(renewal_id)
    state.record_log(record, LogAction.DELETED, user_id or _SYSTEM_USER)
    return Envelope(data=None, message="Renewal deleted successfully")


@router.post("/{renewal_id}/log", status_code=201)
async def add_log(
    renewal_id: str,
    body: LogEntryRequest,
    state: BackendState = Depends(get_state),
    user_id: str | None = Depends(current_user),
) -> Envelope:
    record = _get_or_404(state, renewal_id)
    try:
        action = LogAction(body.action)
    except ValueError:
        raise ValueError(f"Unknown log action {body.action!r}") from None

    changes = [LogChange.model_validate(c) for c in body.changes]
    entry = state.record_log(
        record,
        action,
        user_id or _SYSTEM_USER,
        changes=changes,
        notes=body.notes,
        timestamp=format_for_wire(body.date) or None,
    )
    return Envelope(
        data=entry.model_dump(mode="json", exclude_none=True),
        message="Log entry added successfully",
    )
