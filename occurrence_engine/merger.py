"""Occurrence merging for recurring events.

This module pairs expanded occurrences with their per-date overrides,
derives cancellation and display fields, and applies override patches to the
base event fields. Cancelled dates are kept in the merged output so callers can
choose between the public view and the host view.
"""

import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple, Optional

from .models import DateWindow, MergedOccurrence, Occurrence, OccurrenceOverride, OverrideKey

logger = logging.getLogger(__name__)

# Per-date fields an override patch may replace
ALLOWED_PATCH_FIELDS = frozenset(
    {
        "title",
        "description",
        "start_time",
        "end_time",
        "venue_id",
        "location_mode",
        "custom_location_name",
        "custom_address",
        "custom_city",
        "custom_state",
        "online_url",
        "location_notes",
        "capacity",
        "has_timeslots",
        "total_slots",
        "slot_duration_minutes",
        "is_free",
        "cost_label",
        "signup_url",
        "signup_deadline",
        "age_policy",
        "external_url",
        "categories",
        "cover_image_url",
        "host_notes",
        "is_published",
    }
)

# Series-level fields; changing these on one date would redefine the series
BLOCKED_PATCH_FIELDS = frozenset(
    {
        "event_type",
        "recurrence_rule",
        "day_of_week",
        "custom_dates",
        "max_occurrences",
        "series_mode",
        "is_dsc_event",
    }
)

# Legacy override columns and the event fields they replace
LEGACY_OVERRIDE_COLUMNS = (
    ("override_start_time", "start_time"),
    ("override_cover_media", "cover_image_url"),
    ("override_notes", "host_notes"),
)

# Sorts after any HH:MM start time so untimed occurrences close out their day
UNTIMED_SORT_KEY = "99:99"


def time_sort_key(merged: MergedOccurrence) -> tuple[str, str]:
    """Order within a day: start time, untimed last, then event id."""
    return (merged.start_time or UNTIMED_SORT_KEY, merged.event_id)


class RescheduleInfo(NamedTuple):
    """Where an occurrence is displayed and whether it moved."""

    display_date: datetime.date
    is_rescheduled: bool
    original_date: datetime.date


def display_date_for(
    date_key: datetime.date, override: Optional[OccurrenceOverride]
) -> RescheduleInfo:
    """Resolve the display date of one occurrence.

    Args:
        date_key: The occurrence's original date
        override: Override for that date, if any

    Returns:
        RescheduleInfo; display_date is the patch's ``event_date`` when it
        names a different valid date, otherwise the original date
    """
    target = override.reschedule_target if override is not None else None
    if target is None:
        return RescheduleInfo(date_key, False, date_key)
    return RescheduleInfo(target, True, date_key)


class OccurrenceMerger:
    """Merges expanded occurrences with per-date overrides."""

    def build_override_map(
        self, overrides: Optional[Iterable[OccurrenceOverride]]
    ) -> dict[OverrideKey, OccurrenceOverride]:
        """Index overrides by (event_id, date_key) in a single pass.

        Duplicate keys violate the store's uniqueness guarantee; the last one wins.
        """
        override_map: dict[OverrideKey, OccurrenceOverride] = {}
        for override in overrides or ():
            key = override.key
            if key in override_map:
                logger.debug("Duplicate override for %s on %s, keeping the last", *key)
            override_map[key] = override
        return override_map

    def apply_override(
        self, base_fields: Optional[Mapping[str, Any]], override: Optional[OccurrenceOverride]
    ) -> dict[str, Any]:
        """Return a copy of ``base_fields`` with an override applied.

        Legacy override columns are applied first, then allow-listed patch keys,
        so the patch wins. Patch values of None are applied as-is. The base
        mapping is never modified.

        Args:
            base_fields: Event fields (e.g. start_time, title, host_notes)
            override: Override for one date, or None

        Returns:
            New dictionary of effective fields for that date
        """
        effective = dict(base_fields or {})
        if override is None:
            return effective

        for column, field in LEGACY_OVERRIDE_COLUMNS:
            value = getattr(override, column)
            if value:
                effective[field] = value

        for key, value in (override.patch or {}).items():
            if key in ALLOWED_PATCH_FIELDS:
                effective[key] = value
            elif key in BLOCKED_PATCH_FIELDS:
                logger.debug("Ignoring series-level field %r in override patch", key)

        return effective

    def merge(
        self,
        event_id: str,
        occurrences: Iterable[Occurrence],
        overrides: Optional[Iterable[OccurrenceOverride]],
        base_fields: Optional[Mapping[str, Any]] = None,
    ) -> list[MergedOccurrence]:
        """Pair each occurrence with its override.

        Args:
            event_id: Event the occurrences belong to
            occurrences: Expanded occurrences, ascending
            overrides: Overrides fetched for the window; None means none
            base_fields: Event fields used for the display values

        Returns:
            One MergedOccurrence per input occurrence, in input order
        """
        override_map = self.build_override_map(overrides)
        merged: list[MergedOccurrence] = []

        for occurrence in occurrences:
            override = override_map.get(OverrideKey(event_id, occurrence.date_key))
            effective = self.apply_override(base_fields, override)
            reschedule = display_date_for(occurrence.date_key, override)
            merged.append(
                MergedOccurrence(
                    event_id=event_id,
                    date_key=occurrence.date_key,
                    confident=occurrence.confident,
                    override=override,
                    display_date=reschedule.display_date,
                    is_rescheduled=reschedule.is_rescheduled,
                    start_time=effective.get("start_time"),
                    cover_media=effective.get("cover_image_url"),
                    notes=effective.get("host_notes"),
                )
            )

        cancelled = sum(1 for m in merged if m.is_cancelled)
        if cancelled:
            logger.debug("Event %s: %d of %d occurrence(s) cancelled", event_id, cancelled, len(merged))
        return merged

    def find_reschedules(
        self, overrides: Optional[Iterable[OccurrenceOverride]], window: DateWindow
    ) -> list[tuple[OccurrenceOverride, datetime.date]]:
        """Find overrides that move a date to a target inside ``window``.

        ``merge`` does not follow reschedules across dates; callers use this to
        surface moves whose original date lies outside the expanded set.

        Returns:
            (override, target_date) pairs ordered by target date
        """
        moves = []
        for override in overrides or ():
            target = override.reschedule_target
            if target is not None and window.contains(target):
                moves.append((override, target))
        return sorted(moves, key=lambda item: (item[1], item[0].date_key))

    def group_by_display_date(
        self, merged: Iterable[MergedOccurrence]
    ) -> dict[datetime.date, list[MergedOccurrence]]:
        """Group merged occurrences under their display date, moving rescheduled ones."""
        groups: dict[datetime.date, list[MergedOccurrence]] = {}
        for item in merged:
            groups.setdefault(item.display_date, []).append(item)
        for items in groups.values():
            items.sort(key=time_sort_key)
        return dict(sorted(groups.items()))

    def visible_occurrences(
        self, merged: Iterable[MergedOccurrence], include_cancelled: bool = False
    ) -> list[MergedOccurrence]:
        """Public view drops cancelled dates; the host view keeps them."""
        if include_cancelled:
            return list(merged)
        return [m for m in merged if not m.is_cancelled]
