"""Async service boundary over the renewals backend API.

Every public coroutine returns an :class:`~renewals.models.ApiResult` and
never raises for backend trouble:

- transport failures, timeouts and error statuses become ``success=False``
  with a user-facing message; nothing is retried
- a 401 additionally clears the session token
- client-side validation failures are reported in ``errors`` without any
  request being sent

Read payloads go through :func:`~renewals.responses.normalize_response`,
:func:`~renewals.schema.to_canonical` and status resolution before they are
returned.  Write bodies are produced by :func:`~renewals.schema.to_wire`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import date
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from renewals.collection import calculate_stats
from renewals.config import DEFAULT_API_URL, DEFAULT_TIMEOUT_SECONDS, RenewalsConfig
from renewals.dates import format_for_wire
from renewals.models import (
    CLIENT_AUDIT_HEADER,
    ApiResult,
    LogAction,
    LogChange,
    RenewalLogEntry,
    RenewalRecord,
    RenewalStats,
    RenewalStatus,
)
from renewals.responses import normalize_response
from renewals.schema import WireShape, to_canonical, to_wire
from renewals.session import SessionStore
from renewals.status import (
    EXPIRING_SOON_DAYS,
    apply_status_change,
    refresh_status,
    refresh_statuses,
)
from renewals.validation import RenewalValidationError, validate_renewal

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def _as_record(data: RenewalRecord | Mapping[str, Any]) -> RenewalRecord:
    """Accept a record or a mapping of canonical field names (form data)."""
    if isinstance(data, RenewalRecord):
        return data
    values = dict(data)
    for name in ("start_date", "end_date"):
        if values.get(name) is not None:
            values[name] = format_for_wire(values[name])
    return RenewalRecord.model_validate(values)


def _field_errors(exc: ValidationError) -> dict[str, str]:
    return {
        ".".join(str(part) for part in err["loc"]) or "record": err["msg"] for err in exc.errors()
    }


def _diff(before: RenewalRecord, after: RenewalRecord, fields: Sequence[str]) -> list[LogChange]:
    changes: list[LogChange] = []
    for name in fields:
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            changes.append(
                LogChange(
                    field=name,
                    old_value=old.value if isinstance(old, RenewalStatus) else old,
                    new_value=new.value if isinstance(new, RenewalStatus) else new,
                )
            )
    return changes


class RenewalClient:
    """Client for the renewals REST API.

    Parameters
    ----------
    base_url:
        API root, e.g. ``http://127.0.0.1:8000/api``.
    session:
        Source of the bearer token; cleared on 401.
    timeout:
        Per-request timeout in seconds.
    wire_shape:
        Key set used for request bodies (``current`` or ``legacy``).
    window_days:
        Size of the expiring-soon window used when resolving statuses.
    http_client:
        Pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
        When given, ``base_url`` and ``timeout`` are taken from it.
    today:
        Callable returning the reference date for status resolution.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        session: SessionStore | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        wire_shape: WireShape = "current",
        window_days: int = EXPIRING_SOON_DAYS,
        http_client: httpx.AsyncClient | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._session = session or SessionStore()
        self._wire_shape = wire_shape
        self._window_days = window_days
        self._today = today
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers=_DEFAULT_HEADERS,
            timeout=httpx.Timeout(timeout),
        )

    @classmethod
    def from_config(
        cls,
        config: RenewalsConfig,
        *,
        session: SessionStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> RenewalClient:
        return cls(
            config.api_url,
            session=session or SessionStore(config.session_path),
            timeout=config.timeout_seconds,
            wire_shape=config.wire_shape,  # type: ignore[arg-type]
            window_days=config.expiring_soon_days,
            http_client=http_client,
        )

    @property
    def session(self) -> SessionStore:
        return self._session

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> RenewalClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = dict(_DEFAULT_HEADERS)
        if self._session.token:
            headers["Authorization"] = f"Bearer {self._session.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty).

        Raises ``httpx.HTTPError`` subclasses for transport and status
        failures and ``ValueError`` for an undecodable body.
        """
        if not self._session.token:
            logger.debug("No auth token for %s %s", method, path)
        request_headers = {**self._headers(), **(headers or {})}
        response = await self._http.request(method, path, json=body, headers=request_headers)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.warning("Authentication token expired or invalid; clearing session token")
            self._session.clear_token()
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def _failure_message(self, action: str, exc: Exception) -> str:
        if isinstance(exc, httpx.TimeoutException):
            return f"Failed to {action}: the request timed out"
        if isinstance(exc, httpx.HTTPStatusError):
            if exc.response.status_code == httpx.codes.UNAUTHORIZED:
                return f"Failed to {action}: authentication required"
            return f"Failed to {action}: server responded with {exc.response.status_code}"
        if isinstance(exc, httpx.HTTPError):
            return f"Failed to {action}: the server could not be reached"
        return f"Failed to {action}: unexpected response"

    async def _call(
        self,
        action: str,
        send: Callable[[], Awaitable[Any]],
        convert: Callable[[Any], T],
        default: T,
    ) -> ApiResult[T]:
        """Run *send*, normalize its payload and convert the data.

        Any failure leaves local state untouched and comes back as
        ``success=False`` carrying *default*.
        """
        try:
            raw = await send()
            envelope = normalize_response(raw)
            if not envelope.success:
                message = envelope.message or f"Failed to {action}"
                logger.info("Backend reported failure to %s: %s", action, message)
                return ApiResult(data=default, success=False, message=message)
            data = convert(envelope.data)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error trying to %s: %s", action, exc)
            message = self._failure_message(action, exc)
            return ApiResult(data=default, success=False, message=message)
        return ApiResult(data=data, success=True, message=envelope.message)

    # ------------------------------------------------------------------
    # Converters
    # ------------------------------------------------------------------

    def _record(self, data: Any) -> RenewalRecord:
        return refresh_status(to_canonical(data), self._today(), window_days=self._window_days)

    def _records(self, data: Any) -> list[RenewalRecord]:
        if not isinstance(data, list):
            logger.warning("Expected a list of renewals, got %s", type(data).__name__)
            return []
        canonical = [to_canonical(item) for item in data if isinstance(item, Mapping)]
        return refresh_statuses(canonical, self._today(), window_days=self._window_days)

    @staticmethod
    def _stats(data: Any) -> RenewalStats:
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected statistics object, got {type(data).__name__}")
        return RenewalStats.model_validate(data)

    @staticmethod
    def _log_entries(data: Any) -> list[RenewalLogEntry]:
        if not isinstance(data, list):
            logger.warning("Expected a list of log entries, got %s", type(data).__name__)
            return []
        entries: list[RenewalLogEntry] = []
        for item in data:
            try:
                entries.append(RenewalLogEntry.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed log entry %r: %s", item, exc)
        return entries

    @staticmethod
    def _log_entry(data: Any) -> RenewalLogEntry | None:
        if not isinstance(data, Mapping):
            return None
        try:
            return RenewalLogEntry.model_validate(data)
        except ValidationError:
            logger.debug("Log endpoint echoed a non-entry payload: %r", data)
            return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_renewals(self) -> ApiResult[list[RenewalRecord]]:
        """Fetch every renewal visible to the caller (admin view)."""
        return await self._call(
            "fetch renewals", lambda: self._request("GET", "/renewals"), self._records, []
        )

    async def list_user_renewals(self) -> ApiResult[list[RenewalRecord]]:
        """Fetch the renewals owned by the authenticated user."""
        return await self._call(
            "fetch your renewals",
            lambda: self._request("GET", "/renewals/user"),
            self._records,
            [],
        )

    async def get_renewal(self, renewal_id: str) -> ApiResult[RenewalRecord | None]:
        return await self._call(
            f"fetch renewal with ID {renewal_id}",
            lambda: self._request("GET", f"/renewals/{renewal_id}"),
            self._record,
            None,
        )

    async def list_by_status(self, status: RenewalStatus | str) -> ApiResult[list[RenewalRecord]]:
        value = status.value if isinstance(status, RenewalStatus) else status
        return await self._call(
            f"fetch renewals with status {value}",
            lambda: self._request("GET", f"/renewals/status/{value}"),
            self._records,
            [],
        )

    async def get_statistics(
        self,
        fallback: Sequence[RenewalRecord] | None = None,
    ) -> ApiResult[RenewalStats]:
        """Fetch server-side statistics.

        When the call fails and *fallback* records are given, the returned
        data is computed locally from them (after refreshing their statuses);
        ``success`` still reports the failed call.
        """
        result = await self._call(
            "fetch renewal statistics",
            lambda: self._request("GET", "/renewals/statistics"),
            self._stats,
            RenewalStats(),
        )
        if not result.success and fallback is not None:
            local = calculate_stats(
                refresh_statuses(fallback, self._today(), window_days=self._window_days)
            )
            return result.model_copy(update={"data": local})
        return result

    async def list_logs(self, renewal_id: str) -> ApiResult[list[RenewalLogEntry]]:
        return await self._call(
            "fetch renewal logs",
            lambda: self._request("GET", f"/renewals/{renewal_id}/logs"),
            self._log_entries,
            [],
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _invalid(self, errors: dict[str, str]) -> ApiResult[Any]:
        logger.info("Renewal failed validation: %s", errors)
        return ApiResult(
            data=None,
            success=False,
            message="Please correct the highlighted fields",
            errors=errors,
        )

    async def create_renewal(
        self,
        data: RenewalRecord | Mapping[str, Any],
    ) -> ApiResult[RenewalRecord | None]:
        """Validate and submit a new renewal; the backend assigns its id."""
        try:
            record = _as_record(data)
        except ValidationError as exc:
            return self._invalid(_field_errors(exc))
        errors = validate_renewal(record)
        if errors:
            return self._invalid(errors)

        if record.owner_id is None and self._session.user and self._session.user.get("id"):
            record = record.model_copy(update={"owner_id": str(self._session.user["id"])})
        body = to_wire(record.model_copy(update={"id": None}), self._wire_shape)

        return await self._call(
            "create renewal",
            lambda: self._request("POST", "/renewals", body=body),
            self._record,
            None,
        )

    async def update_renewal(
        self,
        renewal_id: str,
        data: RenewalRecord | Mapping[str, Any],
    ) -> ApiResult[RenewalRecord | None]:
        """Validate and replace a renewal.

        Sent as PUT; when the backend rejects PUT with an error status other
        than 401 the same body is sent once as PATCH.
        """
        return await self._update_renewal(renewal_id, data)

    async def _update_renewal(
        self,
        renewal_id: str,
        data: RenewalRecord | Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> ApiResult[RenewalRecord | None]:
        try:
            record = _as_record(data)
        except ValidationError as exc:
            return self._invalid(_field_errors(exc))
        errors = validate_renewal(record)
        if errors:
            return self._invalid(errors)

        body = to_wire(record, self._wire_shape)
        path = f"/renewals/{renewal_id}"

        async def _send() -> Any:
            try:
                return await self._request("PUT", path, body=body, headers=headers)
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == httpx.codes.UNAUTHORIZED:
                    raise
                logger.info("PUT %s failed with %s, trying PATCH", path, exc.response.status_code)
                return await self._request("PATCH", path, body=body, headers=headers)

        return await self._call(f"update renewal with ID {renewal_id}", _send, self._record, None)

    async def delete_renewal(self, renewal_id: str) -> ApiResult[None]:
        return await self._call(
            f"delete renewal with ID {renewal_id}",
            lambda: self._request("DELETE", f"/renewals/{renewal_id}"),
            lambda _data: None,
            None,
        )

    async def add_log(
        self,
        renewal_id: str,
        action: LogAction | str,
        *,
        notes: str | None = None,
        on: date | str | None = None,
        changes: Sequence[LogChange] | None = None,
    ) -> ApiResult[RenewalLogEntry | None]:
        """Append an audit entry to a renewal."""
        body: dict[str, Any] = {
            "action": action.value if isinstance(action, LogAction) else action,
            "date": format_for_wire(on) or self._today().isoformat(),
        }
        if notes:
            body["notes"] = notes
        if changes:
            body["changes"] = [change.model_dump() for change in changes]

        return await self._call(
            "add log entry",
            lambda: self._request("POST", f"/renewals/{renewal_id}/log", body=body),
            self._log_entry,
            None,
        )

    async def change_status(
        self,
        record: RenewalRecord,
        status: RenewalStatus | str,
        *,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
    ) -> ApiResult[RenewalRecord | None]:
        """Persist an explicit status choice and record it in the audit log.

        Supplying dates is the renewal flow: the entry is logged as
        ``renewed`` instead of ``status_changed``.  The logged changes are
        taken from the server's reply.  A reply that does not carry the
        chosen status is reported as a failure; a failed log write does not
        undo the update and is reported in ``message``.
        """
        if record.id is None:
            return ApiResult(
                data=None, success=False, message="Cannot change status of an unsaved renewal"
            )
        try:
            updated = apply_status_change(
                record,
                status,
                start_date=start_date,
                end_date=end_date,
                reference_date=self._today(),
                window_days=self._window_days,
            )
        except RenewalValidationError as exc:
            return self._invalid(exc.errors)

        result = await self._update_renewal(record.id, updated, {CLIENT_AUDIT_HEADER: "1"})
        if not result.success or result.data is None:
            return result
        if result.data.status != updated.status:
            logger.warning(
                "Server kept status %s for renewal %s instead of %s",
                result.data.status,
                record.id,
                updated.status,
            )
            return result.model_copy(
                update={
                    "success": False,
                    "message": f"The server did not keep the status {updated.status.value}",
                }
            )

        changes = _diff(record, result.data, ("status", "start_date", "end_date"))
        dates_moved = any(change.field != "status" for change in changes)
        action = LogAction.RENEWED if dates_moved else LogAction.STATUS_CHANGED
        log = await self.add_log(record.id, action, changes=changes)
        if not log.success:
            logger.warning("Status of renewal %s changed but the log entry failed", record.id)
            message = f"Status updated, but the log entry was not saved ({log.message})"
            return result.model_copy(update={"message": message})
        return result
