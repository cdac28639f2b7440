"""Unit tests for RenewalClient against a mocked transport."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date

import httpx
import pytest

from renewals.client import RenewalClient
from renewals.config import RenewalsConfig
from renewals.models import LogAction, RenewalRecord, RenewalStats, RenewalStatus
from renewals.session import SessionStore

pytestmark = pytest.mark.unit

TODAY = date(2025, 1, 1)

LEGACY_ROW = {
    "id": 1,
    "user_id": 2,
    "item_name": "example.com",
    "category": "domain",
    "vendor": "GoDaddy",
    "start_date": "2024-05-10",
    "end_date": "2025-01-20",
    "cost": "12.99",
    "status": "active",
}


def _make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    token: str | None = "tok-1",
    user: dict | None = None,
    wire_shape: str = "current",
) -> RenewalClient:
    session = SessionStore()
    if token is not None:
        session.set(token, user)
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test/api"
    )
    return RenewalClient(
        session=session,
        wire_shape=wire_shape,  # type: ignore[arg-type]
        http_client=http_client,
        today=lambda: TODAY,
    )


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


class TestReads:
    async def test_list_normalizes_rows_and_refreshes_status(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": [LEGACY_ROW], "success": True})

        client = _make_client(handler)
        result = await client.list_renewals()

        assert result.success is True
        [record] = result.data
        assert record.id == "1"
        assert record.name == "example.com"
        assert record.cost == 12.99
        # 19 days out from TODAY
        assert record.status is RenewalStatus.EXPIRING_SOON
        assert requests[0].url.path == "/api/renewals"
        assert requests[0].headers["Authorization"] == "Bearer tok-1"

    async def test_bare_list_payload(self):
        client = _make_client(lambda request: httpx.Response(200, json=[LEGACY_ROW]))
        result = await client.list_user_renewals()
        assert result.success is True
        assert [r.id for r in result.data] == ["1"]

    async def test_no_token_sends_no_auth_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _make_client(handler, token=None)
        await client.list_renewals()
        assert "Authorization" not in seen[0].headers

    async def test_backend_reported_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": None, "success": False, "message": "Down"})

        result = await _make_client(handler).list_renewals()
        assert result.success is False
        assert result.data == []
        assert result.message == "Down"

    async def test_get_renewal_and_status_path(self):
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/status/expiring-soon"):
                return httpx.Response(200, json={"data": [LEGACY_ROW]})
            return httpx.Response(200, json={"data": LEGACY_ROW})

        client = _make_client(handler)
        single = await client.get_renewal("1")
        by_status = await client.list_by_status(RenewalStatus.EXPIRING_SOON)

        assert single.data.name == "example.com"
        assert len(by_status.data) == 1
        assert paths == ["/api/renewals/1", "/api/renewals/status/expiring-soon"]

    async def test_not_found(self):
        client = _make_client(lambda request: httpx.Response(404, json={"error": {}}))
        result = await client.get_renewal("99")
        assert result.success is False
        assert result.data is None
        assert result.message == "Failed to fetch renewal with ID 99: server responded with 404"

    async def test_statistics(self):
        payload = {"active": 2, "expiringSoon": 1, "expired": 0, "total": 3, "totalCost": 75.5}
        client = _make_client(lambda request: httpx.Response(200, json={"data": payload}))
        result = await client.get_statistics()
        assert result.success is True
        assert result.data == RenewalStats(
            active=2, expiring_soon=1, expired=0, total=3, total_cost=75.5
        )

    async def test_statistics_fallback_is_computed_locally(self, make_record):
        client = _make_client(lambda request: httpx.Response(500))
        records = [
            make_record(cost=10, end_date="2024-12-01", status=RenewalStatus.ACTIVE),
            make_record(cost=20, end_date="2026-01-01"),
        ]
        result = await client.get_statistics(fallback=records)
        assert result.success is False
        assert result.data.expired == 1
        assert result.data.active == 1
        assert result.data.total_cost == 30

    async def test_list_logs_skips_malformed_entries(self):
        entries = [
            {
                "id": 1,
                "renewal_id": 1,
                "action": "created",
                "performed_by": "u1",
                "timestamp": "2025-01-01T10:00:00Z",
            },
            {"id": 2, "action": "teleported"},
        ]
        client = _make_client(lambda request: httpx.Response(200, json={"data": entries}))
        result = await client.list_logs("1")
        assert result.success is True
        assert [e.action for e in result.data] == [LogAction.CREATED]
        assert result.data[0].renewal_id == "1"


class TestFailures:
    async def test_unauthorized_clears_token(self):
        client = _make_client(lambda request: httpx.Response(401), user={"id": 5})
        result = await client.list_renewals()

        assert result.success is False
        assert result.message == "Failed to fetch renewals: authentication required"
        assert client.session.token is None
        assert client.session.user == {"id": 5}

    async def test_timeout_is_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _make_client(handler).list_renewals()
        assert calls == 1
        assert result.success is False
        assert result.data == []
        assert "timed out" in result.message

    async def test_unreachable_server(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await _make_client(handler).get_statistics()
        assert result.success is False
        assert result.data == RenewalStats()
        assert "could not be reached" in result.message

    async def test_undecodable_body(self):
        client = _make_client(lambda request: httpx.Response(200, content=b"<html>"))
        result = await client.list_renewals()
        assert result.success is False
        assert result.message == "Failed to fetch renewals: unexpected response"


class TestWrites:
    async def test_create_validates_before_sending(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(201, json={})

        result = await _make_client(handler).create_renewal({"name": "x", "cost": 0})
        assert calls == []
        assert result.success is False
        assert result.message == "Please correct the highlighted fields"
        assert result.errors["cost"] == "Cost must be greater than 0"
        assert result.errors["provider"] == "Provider is required"

    async def test_create_reports_unparseable_form_values(self):
        result = await _make_client(lambda r: httpx.Response(201)).create_renewal(
            {"name": "x", "kind": "gadget"}
        )
        assert result.success is False
        assert "kind" in result.errors

    async def test_create_sends_current_body_with_owner(self, make_record):
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(_body(request))
            return httpx.Response(201, json={"data": {**LEGACY_ROW, "id": 12}, "success": True})

        client = _make_client(handler, user={"id": 7})
        result = await client.create_renewal(make_record(id="ignored", end_date="Jun 1, 2025"))

        assert result.success is True
        assert result.data.id == "12"
        body = captured[0]
        assert "id" not in body
        assert body["user_id"] == "7"
        assert body["service_name"] == "example.com"
        assert body["service_type"] == "domain"
        assert body["end_date"] == "2025-06-01"
        assert "item_name" not in body

    async def test_create_with_legacy_shape(self, make_record):
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(_body(request))
            return httpx.Response(201, json=LEGACY_ROW)

        client = _make_client(handler, wire_shape="legacy")
        await client.create_renewal(make_record())
        assert captured[0]["item_name"] == "example.com"
        assert captured[0]["vendor"] == "GoDaddy"

    async def test_update_falls_back_to_patch(self, make_record):
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            if request.method == "PUT":
                return httpx.Response(405)
            return httpx.Response(200, json={"data": LEGACY_ROW})

        result = await _make_client(handler).update_renewal("1", make_record(id="1"))
        assert methods == ["PUT", "PATCH"]
        assert result.success is True

    async def test_update_does_not_fall_back_on_401(self, make_record):
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(401)

        client = _make_client(handler)
        result = await client.update_renewal("1", make_record(id="1"))
        assert methods == ["PUT"]
        assert result.success is False
        assert client.session.token is None

    async def test_update_does_not_fall_back_on_timeout(self, make_record):
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            raise httpx.ReadTimeout("slow", request=request)

        result = await _make_client(handler).update_renewal("1", make_record(id="1"))
        assert methods == ["PUT"]
        assert result.success is False

    async def test_delete(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        result = await _make_client(handler).delete_renewal("3")
        assert result.success is True
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/api/renewals/3"

    async def test_add_log_body(self):
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(_body(request))
            return httpx.Response(201, json={"success": True, "message": "ok"})

        result = await _make_client(handler).add_log("4", LogAction.UPDATED, notes="manual")
        assert result.success is True
        assert result.data is None
        assert captured == [{"action": "updated", "date": "2025-01-01", "notes": "manual"}]


class TestChangeStatus:
    async def test_renewal_logs_renewed(self, make_record):
        calls: list[tuple[str, str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = _body(request)
            calls.append((request.method, request.url.path, body))
            if request.method == "PUT":
                return httpx.Response(200, json={"data": body})
            return httpx.Response(201, json={"success": True})

        record = make_record(id="1", start_date="2024-01-01", end_date="2025-01-01")
        result = await _make_client(handler).change_status(
            record, "active", start_date="2025-01-01", end_date="2026-01-01"
        )

        assert result.success is True
        assert result.data.end_date == "2026-01-01"
        assert [(m, p) for m, p, _ in calls] == [
            ("PUT", "/api/renewals/1"),
            ("POST", "/api/renewals/1/log"),
        ]
        log_body = calls[1][2]
        assert log_body["action"] == "renewed"
        assert {c["field"] for c in log_body["changes"]} == {"start_date", "end_date"}

    async def test_status_only_logs_status_changed(self, make_record):
        logged: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = _body(request)
            if request.method == "PUT":
                return httpx.Response(200, json={"data": body})
            logged.append(body)
            return httpx.Response(201, json={"success": True})

        result = await _make_client(handler).change_status(
            make_record(id="1"), RenewalStatus.CANCELED
        )
        assert result.data.status is RenewalStatus.CANCELED
        assert logged[0]["action"] == "status_changed"
        assert logged[0]["changes"] == [
            {"field": "status", "old_value": "active", "new_value": "canceled"}
        ]

    async def test_derivable_status_is_pinned(self, make_record):
        puts: list[httpx.Request] = []
        logged: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = _body(request)
            if request.method == "PUT":
                puts.append(request)
                return httpx.Response(200, json={"data": body})
            logged.append(body)
            return httpx.Response(201, json={"success": True})

        record = make_record(id="1", end_date="2025-04-11")
        result = await _make_client(handler).change_status(record, RenewalStatus.EXPIRED)

        assert result.success is True
        assert result.data.status is RenewalStatus.EXPIRED
        assert result.data.status_pinned is True
        assert _body(puts[0])["status_pinned"] is True
        assert puts[0].headers["X-Renewals-Client-Audit"] == "1"
        assert logged[0]["changes"] == [
            {"field": "status", "old_value": "active", "new_value": "expired"}
        ]

    async def test_status_dropped_by_server_is_a_failure(self, make_record):
        logged: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "PUT":
                body = _body(request)
                body.pop("status_pinned")
                body["status"] = "active"
                return httpx.Response(200, json={"data": body})
            logged.append(_body(request))
            return httpx.Response(201, json={"success": True})

        result = await _make_client(handler).change_status(
            make_record(id="1"), RenewalStatus.EXPIRED
        )
        assert result.success is False
        assert result.data.status is RenewalStatus.ACTIVE
        assert "did not keep the status expired" in result.message
        assert logged == []

    async def test_failed_log_keeps_update(self, make_record):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "PUT":
                return httpx.Response(200, json={"data": _body(request)})
            return httpx.Response(500)

        result = await _make_client(handler).change_status(make_record(id="1"), "pending")
        assert result.success is True
        assert result.data.status is RenewalStatus.PENDING
        assert "log entry was not saved" in result.message

    async def test_unsaved_record(self):
        client = _make_client(lambda request: httpx.Response(500))
        result = await client.change_status(RenewalRecord(name="x"), "active")
        assert result.success is False
        assert result.message == "Cannot change status of an unsaved renewal"

    async def test_invalid_dates_are_rejected_locally(self, make_record):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        result = await _make_client(handler).change_status(
            make_record(id="1", start_date="2025-01-01"), "active", end_date="2024-01-01"
        )
        assert calls == []
        assert result.errors == {"end_date": "End date must be after start date"}


class TestConstruction:
    async def test_from_config(self, tmp_path):
        config = RenewalsConfig(
            api_url="http://example.test/api",
            timeout_seconds=3,
            wire_shape="legacy",
            session_path=str(tmp_path / "session.json"),
        )
        async with RenewalClient.from_config(config) as client:
            assert client.session.token is None
            assert client._http.base_url == httpx.URL("http://example.test/api/")
            assert client._http.timeout.read == 3
