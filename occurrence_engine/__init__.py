"""occurrence_engine - recurring event occurrence expansion.

Turns recurrence rules attached to community events into bounded, ordered lists
of calendar dates, merges per-date overrides onto them and self-checks the
result for silent under-generation.
"""

__version__ = "0.1.0"

from .auditor import AuditFinding, InvariantAuditor
from .core.config_manager import ConfigManager, EngineConfig
from .deduplicator import DedupeResult, SeriesDeduplicator
from .expander import expand_occurrences, nth_weekday_of_month
from .humanizer import format_date_group_header, label_for, ordinals_to_rule_text
from .merger import OccurrenceMerger, display_date_for
from .models import (
    DateWindow,
    EventRecord,
    Frequency,
    MergedOccurrence,
    Occurrence,
    OccurrenceOverride,
    OverrideKey,
    OverrideStatus,
    RecurrenceBound,
    RecurrenceDescriptor,
)
from .override_store import InMemoryOverrideStore, OverrideStore
from .pipeline import EventOccurrences, NextOccurrence, OccurrencePipeline, PipelineResult
from .rrule_parser import parse_recurrence, weekday_from_value

__all__ = [
    "AuditFinding",
    "ConfigManager",
    "DateWindow",
    "DedupeResult",
    "EngineConfig",
    "EventOccurrences",
    "EventRecord",
    "Frequency",
    "InMemoryOverrideStore",
    "InvariantAuditor",
    "MergedOccurrence",
    "NextOccurrence",
    "Occurrence",
    "OccurrenceMerger",
    "OccurrenceOverride",
    "OccurrencePipeline",
    "OverrideKey",
    "OverrideStatus",
    "OverrideStore",
    "PipelineResult",
    "RecurrenceBound",
    "RecurrenceDescriptor",
    "SeriesDeduplicator",
    "display_date_for",
    "expand_occurrences",
    "format_date_group_header",
    "label_for",
    "nth_weekday_of_month",
    "ordinals_to_rule_text",
    "parse_recurrence",
    "weekday_from_value",
]
