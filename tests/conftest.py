"""Shared fixtures for the renewals test suite."""

from __future__ import annotations

from datetime import date

import pytest

from renewals.models import RenewalKind, RenewalRecord, RenewalStatus
from renewals.store import RenewalStore

# Fixed reference date so status boundaries are deterministic.
TODAY = date(2025, 1, 1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def make_record():
    """Factory for valid renewal records; keyword arguments override fields."""

    def _make(**overrides) -> RenewalRecord:
        values = {
            "name": "example.com",
            "kind": RenewalKind.DOMAIN,
            "provider": "GoDaddy",
            "start_date": "2024-06-01",
            "end_date": "2025-06-01",
            "cost": 12.99,
            "status": RenewalStatus.ACTIVE,
        }
        values.update(overrides)
        return RenewalRecord(**values)

    return _make


@pytest.fixture
def store(make_record) -> RenewalStore:
    """Store with two records: one active, one expired relative to TODAY."""
    return RenewalStore(
        [
            make_record(id="1", owner_id="u1", end_date="2025-06-01"),
            make_record(
                id="2",
                owner_id="u2",
                name="Norton 360",
                kind=RenewalKind.ANTIVIRUS,
                provider="Norton",
                end_date="2024-12-01",
                status=RenewalStatus.EXPIRED,
                cost=49.99,
            ),
        ],
        today=lambda: TODAY,
    )
