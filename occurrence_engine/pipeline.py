"""Occurrence pipeline for the occurrence engine.

Runs raw event records through the full flow:

    records -> de-duplicate -> parse -> expand -> audit -> fetch overrides -> merge

Usage:
    pipeline = OccurrencePipeline(config, override_store=store)
    window = pipeline.default_window(now)
    result = pipeline.expand_events(records, window)
    for occurrence in result.visible():
        ...

"Now" is always passed in; the pipeline never reads a clock.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from .auditor import AuditFinding, InvariantAuditor
from .core.config_manager import EngineConfig
from .core.timezone_utils import add_days, civil_today, format_date_key
from .deduplicator import DedupeResult, SeriesDeduplicator
from .expander import expand_occurrences
from .humanizer import label_for
from .merger import OccurrenceMerger, time_sort_key
from .models import (
    DateWindow,
    EventRecord,
    Frequency,
    MergedOccurrence,
    Occurrence,
    RecurrenceBound,
    RecurrenceDescriptor,
)
from .override_store import OverrideStore, fetch_overrides_safely
from .rrule_parser import parse_recurrence

logger = logging.getLogger(__name__)

# Look-ahead used by next_occurrence
NEXT_OCCURRENCE_HORIZON_DAYS = 366


@dataclass
class EventOccurrences:
    """Expansion result for one event record."""

    record: EventRecord
    descriptor: Optional[RecurrenceDescriptor]
    label: str
    occurrences: list[Occurrence] = field(default_factory=list)
    merged: list[MergedOccurrence] = field(default_factory=list)
    finding: Optional[AuditFinding] = None
    anchored: bool = False

    @property
    def visible(self) -> list[MergedOccurrence]:
        return [m for m in self.merged if not m.is_cancelled]

    @property
    def cancelled(self) -> list[MergedOccurrence]:
        return [m for m in self.merged if m.is_cancelled]


@dataclass(frozen=True)
class NextOccurrence:
    """Next date an event happens on, relative to an injected today."""

    date_key: datetime.date
    is_today: bool
    is_tomorrow: bool
    confident: bool

    @property
    def key(self) -> str:
        return format_date_key(self.date_key)


@dataclass
class PipelineResult:
    """Result of expanding a batch of records into one window.

    Contains per-event results plus warnings and statistics for observability.
    """

    window: DateWindow
    events: list[EventOccurrences] = field(default_factory=list)
    unknown: list[EventRecord] = field(default_factory=list)
    dedupe: DedupeResult = field(default_factory=DedupeResult)
    findings: list[AuditFinding] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)
        logger.warning("%s", message)

    def _flatten(self, include_cancelled: bool) -> list[MergedOccurrence]:
        items = [m for e in self.events for m in e.merged if include_cancelled or not m.is_cancelled]
        return sorted(items, key=lambda m: (m.display_date, *time_sort_key(m)))

    def visible(self) -> list[MergedOccurrence]:
        """Every non-cancelled occurrence, ordered by display date then start time."""
        return self._flatten(include_cancelled=False)

    def cancelled(self) -> list[MergedOccurrence]:
        return [m for m in self._flatten(include_cancelled=True) if m.is_cancelled]


class OccurrencePipeline:
    """Orchestrates parsing, expansion, auditing and merging."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        override_store: Optional[OverrideStore] = None,
        auditor: Optional[InvariantAuditor] = None,
        merger: Optional[OccurrenceMerger] = None,
        deduplicator: Optional[SeriesDeduplicator] = None,
    ):
        self.config = config or EngineConfig()
        self.override_store = override_store
        self.auditor = auditor or InvariantAuditor(config=self.config)
        self.merger = merger or OccurrenceMerger()
        self.deduplicator = deduplicator or SeriesDeduplicator()

    def default_window(self, now: datetime.datetime, days: Optional[int] = None) -> DateWindow:
        """Window starting at today's civil date in the configured zone.

        Args:
            now: Injected current instant
            days: Window length; defaults to the configured window size
        """
        today = civil_today(now, self.config.timezone)
        return DateWindow.starting(today, days or self.config.default_window_days)

    def describe(self, record: EventRecord) -> Optional[RecurrenceDescriptor]:
        """Build the descriptor for a record, folding in record-level bounds."""
        descriptor = parse_recurrence(record.recurrence_rule, record.day_of_week)
        if descriptor is None and record.custom_dates:
            descriptor = RecurrenceDescriptor(frequency=Frequency.CUSTOM)
        if descriptor is None or record.recurrence_end_date is None:
            return descriptor

        bound = descriptor.bounded_by
        until = record.recurrence_end_date
        if bound is not None and bound.until is not None:
            until = min(until, bound.until)
        count = bound.count if bound is not None else None
        return descriptor.model_copy(update={"bounded_by": RecurrenceBound(count=count, until=until)})

    def _occurrence_limit(self, record: EventRecord) -> int:
        limit = self.config.max_occurrences_per_event
        if record.max_occurrences is not None:
            limit = min(limit, record.max_occurrences)
        return limit

    def expand_event(self, record: EventRecord, window: DateWindow) -> EventOccurrences:
        """Expand, audit and merge one record.

        Overrides are fetched once for the whole window, and only when the
        record produced at least one occurrence.
        """
        descriptor = self.describe(record)
        occurrences = expand_occurrences(
            descriptor,
            record.event_date,
            record.custom_dates,
            self._occurrence_limit(record),
            window,
        )
        anchored = record.event_date is not None and window.contains(record.event_date)

        finding = None
        # An in-window anchor or an explicit per-event limit is not a shortfall
        if not anchored and record.max_occurrences is None:
            finding = self.auditor.audit(
                descriptor,
                len(occurrences),
                window.length_days,
                record.id,
                window.start,
                window.end,
            )

        merged: list[MergedOccurrence] = []
        if occurrences:
            overrides = fetch_overrides_safely(
                self.override_store, record.id, window.start_key, window.end_key
            )
            merged = self.merger.merge(record.id, occurrences, overrides, record.model_dump())

        return EventOccurrences(
            record=record,
            descriptor=descriptor,
            label=label_for(descriptor),
            occurrences=occurrences,
            merged=merged,
            finding=finding,
            anchored=anchored,
        )

    def next_occurrence(
        self, record: EventRecord, today: datetime.date, horizon_days: int = NEXT_OCCURRENCE_HORIZON_DAYS
    ) -> NextOccurrence:
        """Find the first date on or after ``today`` that ``record`` happens on.

        Looks ``horizon_days`` ahead. When nothing turns up, a record with an
        anchor date reports that date, and anything else reports ``today`` as
        an unconfident guess.

        Args:
            record: Event record to inspect
            today: Civil "today" in the engine timezone
            horizon_days: How far ahead to look
        """
        window = DateWindow.starting(today, horizon_days)
        occurrences = expand_occurrences(
            self.describe(record), record.event_date, record.custom_dates, 1, window
        )
        if occurrences:
            found, confident = occurrences[0].date_key, occurrences[0].confident
        elif record.event_date is not None:
            found, confident = record.event_date, True
        else:
            logger.debug("No upcoming date for %s within %d days", record.id, horizon_days)
            found, confident = today, False

        return NextOccurrence(
            date_key=found,
            is_today=found == today,
            is_tomorrow=found == add_days(today, 1),
            confident=confident,
        )

    def expand_events(self, records: Iterable[EventRecord], window: DateWindow) -> PipelineResult:
        """De-duplicate a batch of records and expand every survivor into ``window``.

        Only the first ``max_events`` records are considered; the rest are
        counted as skipped. Records with neither a usable pattern nor an anchor
        date are collected in ``unknown``. Expansion stops once the configured
        total is reached.
        """
        records = list(records)
        processed = records[: self.config.max_events]
        skipped = len(records) - len(processed)

        dedupe = self.deduplicator.dedupe(processed)
        result = PipelineResult(window=window, dedupe=dedupe)
        result.metadata["events_in"] = len(records)
        result.metadata["events_processed"] = len(processed)
        result.metadata["events_skipped"] = skipped
        result.metadata["was_capped"] = skipped > 0
        if skipped:
            result.add_warning(f"Skipped {skipped} record(s) beyond the {self.config.max_events} event limit")

        if window.is_empty:
            result.add_warning(f"Empty window {window.start_key}..{window.end_key}; nothing expanded")
            result.metadata["total_occurrences"] = 0
            result.metadata["cancelled_count"] = 0
            return result

        total = 0
        cancelled = 0
        cap = self.config.max_total_occurrences
        for record in dedupe.series + dedupe.one_offs:
            if total >= cap:
                result.metadata["was_capped"] = True
                break

            item = self.expand_event(record, window)
            if item.finding is not None:
                result.findings.append(item.finding)
            if not item.occurrences:
                has_pattern = item.descriptor is not None and item.descriptor.has_pattern
                if record.event_date is None and not has_pattern:
                    result.unknown.append(record)
                continue

            remaining = cap - total
            if len(item.occurrences) > remaining:
                item = dataclasses.replace(
                    item, occurrences=item.occurrences[:remaining], merged=item.merged[:remaining]
                )
                result.metadata["was_capped"] = True

            result.events.append(item)
            total += len(item.occurrences)
            cancelled += len(item.cancelled)

        result.metadata.update(
            {
                "series": len(dedupe.series),
                "one_offs": len(dedupe.one_offs),
                "discarded": dedupe.removed_count,
                "unknown": len(result.unknown),
                "total_occurrences": total,
                "cancelled_count": cancelled,
            }
        )
        logger.debug(
            "Expanded %d record(s) into %d occurrence(s) for %s..%s",
            len(processed),
            total,
            window.start_key,
            window.end_key,
        )
        return result
