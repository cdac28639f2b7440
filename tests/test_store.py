"""Tests for the in-memory RenewalStore."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from renewals.models import RenewalRecord, RenewalStatus
from renewals.store import RenewalStore, sample_renewals

pytestmark = pytest.mark.unit


class TestReads:
    def test_list_and_get(self, store):
        assert len(store) == 2
        assert [r.id for r in store.list_records()] == ["1", "2"]
        assert store.get_record("2").name == "Norton 360"
        assert store.get_record("99") is None

    def test_list_for_owner(self, store):
        assert [r.id for r in store.list_for_owner("u2")] == ["2"]
        assert store.list_for_owner("nobody") == []

    def test_listing_is_a_copy(self, store):
        store.list_records().clear()
        assert len(store) == 2

    def test_stats(self, store):
        stats = store.stats()
        assert (stats.active, stats.expired, stats.total) == (1, 1, 2)

    def test_stores_are_isolated(self, make_record):
        first = RenewalStore()
        second = RenewalStore()
        first.add_record(make_record())
        assert len(first) == 1
        assert len(second) == 0


class TestAdd:
    def test_assigns_id_and_derives_status(self, store, make_record):
        added = store.add_record(make_record(end_date="2025-01-15", status=RenewalStatus.ACTIVE))
        assert added.id == "3"
        assert added.status is RenewalStatus.EXPIRING_SOON
        assert store.get_record("3") == added

    def test_keeps_sticky_status(self, store, make_record):
        added = store.add_record(make_record(status=RenewalStatus.PENDING, end_date="2024-01-01"))
        assert added.status is RenewalStatus.PENDING

    def test_skips_taken_ids(self, make_record, today):
        store = RenewalStore([make_record(id="2")], today=lambda: today)
        assert store.add_record(make_record()).id == "3"


class TestUpdate:
    def test_merges_patch(self, store):
        updated = store.update_record("1", {"cost": 15.0, "notes": "raised"})
        assert updated.cost == 15.0
        assert updated.notes == "raised"
        assert updated.name == "example.com"
        assert store.get_record("1") == updated

    def test_unknown_id_returns_none(self, store):
        assert store.update_record("99", {"cost": 1.0}) is None

    def test_id_and_owner_are_immutable(self, store):
        updated = store.update_record("1", {"id": "42", "owner_id": "intruder", "cost": 3.0})
        assert updated.id == "1"
        assert updated.owner_id == "u1"
        assert store.get_record("42") is None

    def test_end_date_change_rederives_status(self, store):
        updated = store.update_record("2", {"end_date": "Feb 15, 2025"})
        assert updated.end_date == "2025-02-15"
        assert updated.status is RenewalStatus.ACTIVE

    def test_explicit_status_wins(self, store):
        updated = store.update_record(
            "2", {"end_date": "2026-01-01", "status": RenewalStatus.CANCELED}
        )
        assert updated.status is RenewalStatus.CANCELED

    def test_sticky_status_survives_date_edit(self, store):
        store.update_record("1", {"status": RenewalStatus.PENDING})
        updated = store.update_record("1", {"end_date": "2024-01-01"})
        assert updated.status is RenewalStatus.PENDING

    def test_record_patch_uses_only_set_fields(self, store):
        updated = store.update_record("1", RenewalRecord(notes="only notes"))
        assert updated.notes == "only notes"
        assert updated.provider == "GoDaddy"


class TestCurrentStatus:
    """Derived statuses follow the store's clock, not the last write."""

    @staticmethod
    def _clocked_store(make_record):
        clock = {"today": date(2025, 1, 1)}
        store = RenewalStore(today=lambda: clock["today"])
        store.add_record(make_record(end_date="2025-02-05"))
        return store, clock

    def test_reads_follow_the_clock(self, make_record):
        store, clock = self._clocked_store(make_record)
        assert store.get_record("1").status is RenewalStatus.ACTIVE

        clock["today"] = date(2025, 1, 10)
        assert store.get_record("1").status is RenewalStatus.EXPIRING_SOON
        assert [r.status for r in store.list_records()] == [RenewalStatus.EXPIRING_SOON]

    def test_stats_and_status_listing_follow_the_clock(self, make_record):
        store, clock = self._clocked_store(make_record)
        clock["today"] = date(2025, 1, 10)

        stats = store.stats()
        assert (stats.active, stats.expiring_soon) == (0, 1)
        assert [r.id for r in store.list_by_status("expiring-soon")] == ["1"]
        assert store.list_by_status(RenewalStatus.ACTIVE) == []

    def test_unknown_status_listing(self, store):
        with pytest.raises(ValueError):
            store.list_by_status("paused")


class TestPinnedStatus:
    def test_pinned_status_survives_rederivation(self, store):
        updated = store.update_record(
            "1", {"status": RenewalStatus.EXPIRED, "status_pinned": True}
        )
        assert updated.status is RenewalStatus.EXPIRED
        assert store.get_record("1").status is RenewalStatus.EXPIRED

        noted = store.update_record("1", {"notes": "closed early", "status_pinned": True})
        assert noted.status is RenewalStatus.EXPIRED

    def test_unpinned_echo_is_rederived(self, store):
        updated = store.update_record("1", {"status": RenewalStatus.EXPIRED})
        assert updated.status is RenewalStatus.ACTIVE

    def test_moving_dates_drops_the_pin(self, store):
        store.update_record("1", {"status": RenewalStatus.EXPIRED, "status_pinned": True})
        moved = store.update_record(
            "1",
            {"end_date": "2025-01-20", "status": RenewalStatus.EXPIRED, "status_pinned": True},
        )
        assert moved.status_pinned is False
        assert moved.status is RenewalStatus.EXPIRING_SOON

    def test_add_keeps_pinned_status(self, store, make_record):
        added = store.add_record(make_record(status=RenewalStatus.EXPIRED, status_pinned=True))
        assert added.status is RenewalStatus.EXPIRED


class TestDelete:
    def test_delete(self, store):
        assert store.delete_record("1") is True
        assert store.get_record("1") is None
        assert len(store) == 1

    def test_delete_unknown(self, store):
        assert store.delete_record("99") is False
        assert len(store) == 2


class TestSampleRenewals:
    def test_every_derived_status_is_present(self, today):
        records = sample_renewals(today)
        assert [r.id for r in records] == ["1", "2", "3", "4", "5"]
        assert {r.status for r in records} == {
            RenewalStatus.ACTIVE,
            RenewalStatus.EXPIRING_SOON,
            RenewalStatus.EXPIRED,
        }

    def test_dates_are_relative_to_today(self, today):
        records = sample_renewals(today)
        norton = next(r for r in records if r.name == "Norton 360")
        assert norton.end_date == (today + timedelta(days=25)).isoformat()

    def test_defaults_to_current_date(self):
        records = sample_renewals()
        assert all(date.fromisoformat(r.end_date) for r in records)
