"""Unit tests for merger module."""

import datetime

import pytest

from occurrence_engine.merger import (
    ALLOWED_PATCH_FIELDS,
    BLOCKED_PATCH_FIELDS,
    OccurrenceMerger,
    display_date_for,
)
from occurrence_engine.models import (
    DateWindow,
    Occurrence,
    OccurrenceOverride,
    OverrideKey,
    OverrideStatus,
)

pytestmark = pytest.mark.unit

D = datetime.date


def make_override(date_key: str, **kwargs) -> OccurrenceOverride:
    return OccurrenceOverride(event_id=kwargs.pop("event_id", "evt-1"), date_key=date_key, **kwargs)


class TestOccurrenceMerger:
    """Tests for OccurrenceMerger.merge and the override map."""

    def setup_method(self):
        """Set up test fixtures."""
        self.merger = OccurrenceMerger()
        self.occurrences = [
            Occurrence(date_key=D(2026, 3, 2)),
            Occurrence(date_key=D(2026, 3, 9)),
            Occurrence(date_key=D(2026, 3, 16), confident=False),
        ]

    def test_no_overrides_means_all_normal(self):
        merged = self.merger.merge("evt-1", self.occurrences, None)

        assert [m.key for m in merged] == ["2026-03-02", "2026-03-09", "2026-03-16"]
        assert not any(m.is_cancelled for m in merged)
        assert all(m.override is None for m in merged)
        assert merged[2].confident is False

    def test_empty_override_list_means_all_normal(self):
        merged = self.merger.merge("evt-1", self.occurrences, [])

        assert not any(m.is_cancelled for m in merged)

    def test_cancelled_date_is_kept_and_flagged(self):
        overrides = [make_override("2026-03-02", status=OverrideStatus.CANCELLED)]

        merged = self.merger.merge("evt-1", self.occurrences, overrides)

        assert len(merged) == 3
        assert merged[0].is_cancelled
        assert not merged[1].is_cancelled

    def test_overrides_for_other_events_are_ignored(self):
        overrides = [make_override("2026-03-02", event_id="evt-2", status="cancelled")]

        merged = self.merger.merge("evt-1", self.occurrences, overrides)

        assert not merged[0].is_cancelled

    def test_override_for_date_outside_occurrences_is_ignored(self):
        overrides = [make_override("2026-03-03", status="cancelled")]

        merged = self.merger.merge("evt-1", self.occurrences, overrides)

        assert not any(m.is_cancelled for m in merged)

    def test_merge_is_idempotent(self):
        overrides = [
            make_override("2026-03-02", status="cancelled"),
            make_override("2026-03-09", override_start_time="20:00"),
        ]

        first = self.merger.merge("evt-1", self.occurrences, overrides, {"start_time": "19:00"})
        second = self.merger.merge("evt-1", self.occurrences, overrides, {"start_time": "19:00"})

        assert first == second

    def test_inputs_are_not_mutated(self):
        overrides = [make_override("2026-03-02", patch={"title": "Special"})]
        base = {"title": "Open Mic", "start_time": "19:00"}
        occurrences = list(self.occurrences)

        self.merger.merge("evt-1", occurrences, overrides, base)

        assert base == {"title": "Open Mic", "start_time": "19:00"}
        assert occurrences == self.occurrences
        assert overrides[0].patch == {"title": "Special"}

    def test_display_fields_follow_override(self):
        overrides = [
            make_override(
                "2026-03-09",
                override_start_time="20:00",
                override_cover_media="https://example.org/cover.png",
                override_notes="Bring your own amp",
            )
        ]

        merged = self.merger.merge("evt-1", self.occurrences, overrides, {"start_time": "19:00"})

        assert merged[0].start_time == "19:00"
        assert merged[1].start_time == "20:00"
        assert merged[1].cover_media == "https://example.org/cover.png"
        assert merged[1].notes == "Bring your own amp"

    def test_duplicate_keys_last_one_wins(self):
        overrides = [
            make_override("2026-03-02", status="cancelled"),
            make_override("2026-03-02", status="normal"),
        ]

        override_map = self.merger.build_override_map(overrides)

        assert len(override_map) == 1
        assert override_map[OverrideKey("evt-1", D(2026, 3, 2))].status == OverrideStatus.NORMAL

    def test_visible_occurrences_views(self):
        overrides = [make_override("2026-03-09", status="cancelled")]
        merged = self.merger.merge("evt-1", self.occurrences, overrides)

        public = self.merger.visible_occurrences(merged)
        host = self.merger.visible_occurrences(merged, include_cancelled=True)

        assert [m.key for m in public] == ["2026-03-02", "2026-03-16"]
        assert len(host) == 3


class TestApplyOverride:
    """Tests for patch application on base event fields."""

    def setup_method(self):
        """Set up test fixtures."""
        self.merger = OccurrenceMerger()
        self.base = {
            "title": "Open Mic",
            "start_time": "19:00",
            "cover_image_url": "base.png",
            "host_notes": "Sign up at the door",
            "recurrence_rule": "weekly",
        }

    def test_none_override_returns_copy(self):
        result = self.merger.apply_override(self.base, None)

        assert result == self.base
        assert result is not self.base

    def test_legacy_columns_are_applied(self):
        override = make_override(
            "2026-03-02",
            override_start_time="20:30",
            override_cover_media="special.png",
            override_notes="Guest host tonight",
        )

        result = self.merger.apply_override(self.base, override)

        assert result["start_time"] == "20:30"
        assert result["cover_image_url"] == "special.png"
        assert result["host_notes"] == "Guest host tonight"

    def test_patch_wins_over_legacy_columns(self):
        override = make_override("2026-03-02", override_start_time="20:30", patch={"start_time": "21:00"})

        result = self.merger.apply_override(self.base, override)

        assert result["start_time"] == "21:00"

    def test_patch_null_values_are_applied(self):
        override = make_override("2026-03-02", patch={"host_notes": None})

        result = self.merger.apply_override(self.base, override)

        assert "host_notes" in result
        assert result["host_notes"] is None

    def test_blocked_and_unknown_patch_keys_are_ignored(self):
        override = make_override(
            "2026-03-02",
            patch={"recurrence_rule": "monthly", "day_of_week": "Friday", "not_a_field": 1, "title": "Showcase"},
        )

        result = self.merger.apply_override(self.base, override)

        assert result["recurrence_rule"] == "weekly"
        assert "day_of_week" not in result
        assert "not_a_field" not in result
        assert result["title"] == "Showcase"

    def test_non_mapping_patch_is_ignored(self):
        override = make_override("2026-03-02", patch="title=Broken")

        assert override.patch is None
        assert self.merger.apply_override(self.base, override) == self.base

    def test_allowed_and_blocked_fields_do_not_overlap(self):
        assert not ALLOWED_PATCH_FIELDS & BLOCKED_PATCH_FIELDS


class TestReschedules:
    """Tests for display dates and reschedule lookup."""

    def setup_method(self):
        """Set up test fixtures."""
        self.merger = OccurrenceMerger()

    def test_display_date_without_override(self):
        info = display_date_for(D(2026, 3, 2), None)

        assert info.display_date == D(2026, 3, 2)
        assert not info.is_rescheduled

    def test_display_date_follows_patch_event_date(self):
        override = make_override("2026-03-02", patch={"event_date": "2026-03-04"})

        info = display_date_for(D(2026, 3, 2), override)

        assert info.display_date == D(2026, 3, 4)
        assert info.is_rescheduled
        assert info.original_date == D(2026, 3, 2)

    @pytest.mark.parametrize("event_date", ["2026-03-02", "not-a-date", "", None])
    def test_same_or_invalid_event_date_is_not_a_reschedule(self, event_date):
        override = make_override("2026-03-02", patch={"event_date": event_date})

        info = display_date_for(D(2026, 3, 2), override)

        assert not info.is_rescheduled
        assert info.display_date == D(2026, 3, 2)

    def test_merged_occurrence_carries_reschedule(self):
        overrides = [make_override("2026-03-02", patch={"event_date": "2026-03-05"})]

        merged = self.merger.merge("evt-1", [Occurrence(date_key=D(2026, 3, 2))], overrides)

        assert merged[0].date_key == D(2026, 3, 2)
        assert merged[0].display_date == D(2026, 3, 5)
        assert merged[0].is_rescheduled

    def test_find_reschedules_into_window(self):
        overrides = [
            make_override("2026-02-27", patch={"event_date": "2026-03-03"}),
            make_override("2026-03-09", patch={"event_date": "2026-04-20"}),
            make_override("2026-03-16", status="cancelled"),
        ]
        window = DateWindow.from_keys("2026-03-01", "2026-03-31")

        moves = self.merger.find_reschedules(overrides, window)

        assert [(o.date_key, target) for o, target in moves] == [(D(2026, 2, 27), D(2026, 3, 3))]

    def test_group_by_display_date_moves_rescheduled_entries(self):
        overrides = [make_override("2026-03-02", patch={"event_date": "2026-03-09", "start_time": "21:00"})]
        occurrences = [Occurrence(date_key=D(2026, 3, 2)), Occurrence(date_key=D(2026, 3, 9))]
        merged = self.merger.merge("evt-1", occurrences, overrides, {"start_time": "19:00"})

        groups = self.merger.group_by_display_date(merged)

        assert list(groups) == [D(2026, 3, 9)]
        assert [m.start_time for m in groups[D(2026, 3, 9)]] == ["19:00", "21:00"]

    def test_untimed_entries_sort_after_timed_ones(self):
        day = [Occurrence(date_key=D(2026, 3, 2))]
        merged = (
            self.merger.merge("b", day, None, {})
            + self.merger.merge("c", day, None, {"start_time": "09:30"})
            + self.merger.merge("a", day, None, {"start_time": "19:00"})
        )

        groups = self.merger.group_by_display_date(merged)

        assert [m.event_id for m in groups[D(2026, 3, 2)]] == ["c", "a", "b"]
