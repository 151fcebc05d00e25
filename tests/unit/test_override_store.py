"""Unit tests for override_store module."""

import datetime

import pytest

from occurrence_engine.core.exceptions import InvalidDateKeyError
from occurrence_engine.models import OccurrenceOverride, OverrideStatus
from occurrence_engine.override_store import InMemoryOverrideStore, fetch_overrides_safely

pytestmark = pytest.mark.unit


class _NoneStore:
    def fetch_overrides(self, event_id, start_key, end_key):
        return None


class _FailingStore:
    def fetch_overrides(self, event_id, start_key, end_key):
        raise ConnectionError("database unavailable")


class TestInMemoryOverrideStore:
    """Tests for the dict-backed reference store."""

    def test_upsert_defaults_to_normal(self, override_store):
        override = override_store.upsert("evt-1", "2026-03-02", override_start_time="20:00")

        assert override.status == OverrideStatus.NORMAL
        assert override.date_key == datetime.date(2026, 3, 2)
        assert len(override_store) == 1

    def test_upsert_replaces_existing_override(self, override_store):
        override_store.upsert("evt-1", "2026-03-02", status="cancelled")
        override_store.upsert("evt-1", "2026-03-02", override_notes="Back on")

        (override,) = override_store.fetch_overrides("evt-1", "2026-03-01", "2026-03-31")

        assert override.status == OverrideStatus.NORMAL
        assert override.override_notes == "Back on"

    def test_cancel_keeps_other_fields(self, override_store):
        override_store.upsert("evt-1", "2026-03-02", override_notes="Guest host")

        override = override_store.cancel("evt-1", "2026-03-02")

        assert override.is_cancelled
        assert override.override_notes == "Guest host"

    def test_delete_reverts_date(self, override_store):
        override_store.cancel("evt-1", "2026-03-02")

        assert override_store.delete("evt-1", "2026-03-02") is True
        assert override_store.delete("evt-1", "2026-03-02") is False
        assert override_store.fetch_overrides("evt-1", "2026-03-01", "2026-03-31") == []

    def test_fetch_filters_by_event_and_window(self, override_store):
        override_store.upsert("evt-1", "2026-02-23")
        override_store.upsert("evt-1", "2026-03-09")
        override_store.upsert("evt-1", "2026-03-02")
        override_store.upsert("evt-2", "2026-03-02")

        found = override_store.fetch_overrides("evt-1", "2026-03-01", "2026-03-31")

        assert [o.date_key.isoformat() for o in found] == ["2026-03-02", "2026-03-09"]
        assert all(o.event_id == "evt-1" for o in found)

    def test_window_bounds_are_inclusive(self, override_store):
        override_store.upsert("evt-1", "2026-03-01")
        override_store.upsert("evt-1", "2026-03-31")

        found = override_store.fetch_overrides("evt-1", "2026-03-01", "2026-03-31")

        assert len(found) == 2

    def test_seeded_overrides(self):
        store = InMemoryOverrideStore(
            [OccurrenceOverride(event_id="evt-1", date_key=datetime.date(2026, 3, 2), status="cancelled")]
        )

        (override,) = store.fetch_overrides("evt-1", "2026-03-02", "2026-03-02")

        assert override.is_cancelled

    def test_malformed_date_key_raises(self, override_store):
        with pytest.raises(InvalidDateKeyError):
            override_store.upsert("evt-1", "03/02/2026")


class TestFetchOverridesSafely:
    """Tests for the read helper used by the pipeline."""

    def test_missing_store_is_empty(self):
        assert fetch_overrides_safely(None, "evt-1", "2026-03-01", "2026-03-31") == []

    def test_none_response_is_empty(self):
        assert fetch_overrides_safely(_NoneStore(), "evt-1", "2026-03-01", "2026-03-31") == []

    def test_store_errors_propagate(self):
        with pytest.raises(ConnectionError):
            fetch_overrides_safely(_FailingStore(), "evt-1", "2026-03-01", "2026-03-31")
