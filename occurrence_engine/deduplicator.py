"""Series de-duplication for raw event records.

Imports and repeated form submissions leave several records describing the same
series at the same venue. Only the best-populated one should be expanded;
pattern-less siblings are kept as one-off events.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from .models import EventRecord
from .rrule_parser import parse_recurrence, weekday_from_value

logger = logging.getLogger(__name__)

# Fields a discarded duplicate may fill in on the winning record
BACKFILL_FIELDS = (
    "recurrence_rule",
    "day_of_week",
    "start_time",
    "event_date",
    "recurrence_end_date",
    "max_occurrences",
)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class DedupeResult:
    """Outcome of de-duplicating a batch of records."""

    series: list[EventRecord] = field(default_factory=list)
    one_offs: list[EventRecord] = field(default_factory=list)
    discarded: list[EventRecord] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.discarded)


def normalize_title(title: Optional[str]) -> str:
    """Casefold and collapse whitespace so near-identical titles group together."""
    return _WHITESPACE.sub(" ", (title or "").strip()).casefold()


def series_key(record: EventRecord) -> tuple[Optional[str], str]:
    """Grouping key of a record: (venue_id, normalized title).

    Untitled records never group with each other.
    """
    title = normalize_title(record.title)
    if not title:
        return record.venue_id, f"#{record.id}"
    return record.venue_id, title


def completeness_score(record: EventRecord) -> int:
    """+1 each for a recurrence rule, a start time and a weekday."""
    score = 0
    if record.recurrence_rule and record.recurrence_rule.strip():
        score += 1
    if record.start_time:
        score += 1
    if weekday_from_value(record.day_of_week) is not None:
        score += 1
    return score


def has_recurrence_pattern(record: EventRecord) -> bool:
    """True when the record describes an expandable recurring schedule."""
    if record.custom_dates:
        return True
    descriptor = parse_recurrence(record.recurrence_rule, record.day_of_week)
    return descriptor is not None and descriptor.has_pattern


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


class SeriesDeduplicator:
    """Collapses duplicate series records before expansion."""

    def __init__(self, backfill: bool = False):
        """Initialize de-duplicator.

        Args:
            backfill: Fill the winner's empty fields from its discarded duplicates
        """
        self.backfill = backfill

    def _pick_winner(self, group: list[EventRecord]) -> EventRecord:
        winner = group[0]
        best = completeness_score(winner)
        for record in group[1:]:
            score = completeness_score(record)
            # Strictly greater keeps the first record on ties
            if score > best:
                winner, best = record, score
        return winner

    def _backfill(self, winner: EventRecord, losers: list[EventRecord]) -> EventRecord:
        updates: dict[str, Any] = {}
        for name in BACKFILL_FIELDS:
            if not _is_empty(getattr(winner, name)):
                continue
            for loser in losers:
                value = getattr(loser, name)
                if not _is_empty(value):
                    updates[name] = value
                    break
        if not updates:
            return winner
        logger.debug("Backfilled %s on %s from duplicates", ", ".join(updates), winner.id)
        return winner.model_copy(update=updates)

    def dedupe(self, records: Iterable[EventRecord]) -> DedupeResult:
        """Split records into series to expand, one-offs and discarded duplicates.

        Args:
            records: Raw event records in their stored order

        Returns:
            DedupeResult; input records are never modified
        """
        groups: dict[tuple[Optional[str], str], list[EventRecord]] = {}
        for record in records:
            groups.setdefault(series_key(record), []).append(record)

        result = DedupeResult()
        for group in groups.values():
            winner = self._pick_winner(group)
            losers = [r for r in group if r is not winner]
            discarded = [r for r in losers if has_recurrence_pattern(r)]

            if self.backfill and discarded:
                winner = self._backfill(winner, discarded)

            if has_recurrence_pattern(winner):
                result.series.append(winner)
            else:
                result.one_offs.append(winner)

            result.one_offs.extend(r for r in losers if not has_recurrence_pattern(r))
            result.discarded.extend(discarded)

        if result.discarded:
            logger.debug(
                "Series de-duplication: kept %d series, discarded %d duplicate(s)",
                len(result.series),
                len(result.discarded),
            )
        return result

    def dedupe_series(self, records: Iterable[EventRecord]) -> list[EventRecord]:
        """Return only the winning recurring series."""
        return self.dedupe(records).series
