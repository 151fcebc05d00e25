"""Data models for recurrence descriptors, occurrences and overrides."""

from __future__ import annotations

import datetime
import logging
from enum import Enum
from typing import Any, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .core.timezone_utils import add_days, format_date_key, parse_date_key, try_parse_date_key

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    """Shape of a recurring schedule."""

    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    ORDINAL_MONTHLY = "ordinal-monthly"
    CUSTOM = "custom"


class OverrideStatus(str, Enum):
    """Per-date status stored with an override."""

    NORMAL = "normal"
    CANCELLED = "cancelled"


class RecurrenceBound(BaseModel):
    """Explicit termination of a series by count, end date, or both."""

    count: Optional[int] = Field(default=None, ge=1, description="Total occurrences in the series")
    until: Optional[datetime.date] = Field(default=None, description="Last allowed date (inclusive)")

    model_config = ConfigDict(frozen=True)


class RecurrenceDescriptor(BaseModel):
    """Abstract schedule shape produced by the RRULE parser.

    ``weekday`` uses Sunday=0 through Saturday=6. It is deliberately not range
    checked here; the expander treats an out-of-range weekday as "no dates".
    """

    frequency: Frequency
    interval: int = Field(default=1, ge=1, description="Multiplier on the base unit")
    weekday: Optional[int] = Field(default=None, description="0=Sunday .. 6=Saturday")
    ordinals: tuple[int, ...] = Field(
        default=(), description="Nth-weekday-of-month positions, -1 is the last"
    )
    byday: tuple[tuple[Optional[int], int], ...] = Field(
        default=(),
        description="Explicit (ordinal, weekday) entries; an ordinal of None means every such weekday",
    )
    month_days: tuple[int, ...] = Field(
        default=(), description="Days of the month, negative counts from month end"
    )
    custom_dates: tuple[datetime.date, ...] = Field(
        default=(), description="Explicit dates for custom schedules"
    )
    bounded_by: Optional[RecurrenceBound] = None
    is_confident: bool = True
    source_rule: Optional[str] = Field(default=None, description="Rule text this was parsed from")

    model_config = ConfigDict(frozen=True)

    @field_validator("ordinals", "month_days")
    @classmethod
    def _drop_duplicates(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(dict.fromkeys(v for v in value if v != 0))

    @field_validator("byday")
    @classmethod
    def _drop_duplicate_entries(
        cls, value: tuple[tuple[Optional[int], int], ...]
    ) -> tuple[tuple[Optional[int], int], ...]:
        return tuple(dict.fromkeys(entry for entry in value if entry[0] != 0))

    @property
    def weekdays(self) -> tuple[int, ...]:
        """Distinct weekdays of the schedule, the primary weekday first."""
        days = [self.weekday] if self.weekday is not None else []
        days.extend(weekday for _, weekday in self.byday)
        return tuple(dict.fromkeys(days))

    @property
    def day_entries(self) -> tuple[tuple[Optional[int], int], ...]:
        """(ordinal, weekday) entries, derived from weekday and ordinals when none are explicit."""
        if self.byday:
            return self.byday
        if self.weekday is None:
            return ()
        if self.ordinals:
            return tuple((ordinal, self.weekday) for ordinal in self.ordinals)
        return ((None, self.weekday),)

    @property
    def is_bounded(self) -> bool:
        return self.bounded_by is not None

    @property
    def has_pattern(self) -> bool:
        """True when the descriptor describes something expandable."""
        return self.frequency != Frequency.NONE


class DateWindow(BaseModel):
    """Inclusive range of calendar dates ``[start, end]``."""

    start: datetime.date
    end: datetime.date

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_keys(cls, start_key: str, end_key: str) -> DateWindow:
        """Build a window from ``YYYY-MM-DD`` keys.

        Raises:
            InvalidDateKeyError: If either key is malformed
        """
        return cls(start=parse_date_key(start_key), end=parse_date_key(end_key))

    @classmethod
    def starting(cls, reference_date: datetime.date, days: int) -> DateWindow:
        """Window of ``days`` calendar days beginning at ``reference_date``."""
        return cls(start=reference_date, end=add_days(reference_date, days - 1))

    @property
    def is_empty(self) -> bool:
        return self.end < self.start

    @property
    def length_days(self) -> int:
        if self.is_empty:
            return 0
        return (self.end - self.start).days + 1

    @property
    def start_key(self) -> str:
        return format_date_key(self.start)

    @property
    def end_key(self) -> str:
        return format_date_key(self.end)

    def contains(self, value: datetime.date) -> bool:
        return self.start <= value <= self.end


class Occurrence(BaseModel):
    """A single concrete date produced by the expander."""

    date_key: datetime.date
    confident: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> str:
        return format_date_key(self.date_key)

    @field_serializer("date_key")
    def _serialize_date_key(self, value: datetime.date) -> str:
        return format_date_key(value)


class OverrideKey(NamedTuple):
    """Composite identity of an override: one per event per date."""

    event_id: str
    date_key: datetime.date


class OccurrenceOverride(BaseModel):
    """Per-date modification of a recurring event."""

    event_id: str
    date_key: datetime.date
    status: OverrideStatus = OverrideStatus.NORMAL
    override_start_time: Optional[str] = None
    override_cover_media: Optional[str] = None
    override_notes: Optional[str] = None
    patch: Optional[dict[str, Any]] = Field(
        default=None, description="Arbitrary field replacements for this date"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("patch", mode="before")
    @classmethod
    def _ignore_non_mapping_patch(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, dict):
            logger.debug("Ignoring non-mapping override patch of type %s", type(value).__name__)
            return None
        return value

    @property
    def key(self) -> OverrideKey:
        return OverrideKey(self.event_id, self.date_key)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OverrideStatus.CANCELLED

    @property
    def reschedule_target(self) -> Optional[datetime.date]:
        """Date carried in ``patch['event_date']`` when it differs from this date."""
        if not self.patch:
            return None
        target = try_parse_date_key(self.patch.get("event_date"))
        if target is None or target == self.date_key:
            return None
        return target


class MergedOccurrence(BaseModel):
    """An occurrence paired with its override and the display fields it implies."""

    event_id: str
    date_key: datetime.date
    confident: bool = True
    override: Optional[OccurrenceOverride] = None
    display_date: datetime.date
    is_rescheduled: bool = False
    start_time: Optional[str] = None
    cover_media: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_cancelled(self) -> bool:
        return self.override is not None and self.override.is_cancelled

    @property
    def key(self) -> str:
        return format_date_key(self.date_key)

    @field_serializer("date_key", "display_date")
    def _serialize_dates(self, value: datetime.date) -> str:
        return format_date_key(value)


class EventRecord(BaseModel):
    """Raw fields of a persisted event that the engine reads.

    Extra columns are kept so overrides can patch them.
    """

    id: str
    title: str = ""
    venue_id: Optional[str] = None
    recurrence_rule: Optional[str] = None
    day_of_week: Optional[Union[int, str]] = None
    start_time: Optional[str] = None
    event_date: Optional[datetime.date] = Field(default=None, description="Resolved anchor date")
    custom_dates: list[datetime.date] = Field(default_factory=list)
    max_occurrences: Optional[int] = Field(default=None, ge=1)
    recurrence_end_date: Optional[datetime.date] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("event_date", "recurrence_end_date", mode="before")
    @classmethod
    def _blank_date_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("custom_dates", mode="before")
    @classmethod
    def _drop_malformed_custom_dates(cls, value: Any) -> Any:
        if value is None:
            return []
        parsed = [try_parse_date_key(item) for item in value]
        return [item for item in parsed if item is not None]
