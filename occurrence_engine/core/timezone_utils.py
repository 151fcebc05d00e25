"""Civil calendar and timezone utilities for the occurrence engine.

All recurrence arithmetic works on civil calendar dates. The only place a
wall-clock instant enters is :func:`civil_today`, which turns an injected
instant into the calendar date observed in the configured zone.
"""

from __future__ import annotations

import datetime
import logging
import zoneinfo
from functools import lru_cache
from typing import ClassVar

from .exceptions import InvalidDateKeyError, UnknownTimezoneError

logger = logging.getLogger(__name__)

# Default zone the community calendar is published in
DEFAULT_ENGINE_TIMEZONE = "America/Denver"

DATE_KEY_FORMAT = "%Y-%m-%d"

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class TimezoneAliases:
    """Maps common abbreviations and obsolete names to IANA identifiers."""

    TZ_ABBREV_MAP: ClassVar[dict[str, str]] = {
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "EST": "America/New_York",
        "EDT": "America/New_York",
    }

    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Arizona": "America/Phoenix",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "GMT": "UTC",
        "Etc/UTC": "UTC",
        "Z": "UTC",
    }

    @classmethod
    def resolve(cls, tz_name: str) -> str:
        """Return the canonical identifier for an alias, or the name unchanged."""
        name = tz_name.strip()
        return cls.TZ_ABBREV_MAP.get(name.upper(), cls.TZ_ALIAS_MAP.get(name, name))


@lru_cache(maxsize=20)
def resolve_zone(tz_name: str | None = None) -> zoneinfo.ZoneInfo:
    """Load a ZoneInfo for a timezone name or alias.

    Args:
        tz_name: IANA identifier or known alias; None uses the engine default

    Returns:
        ZoneInfo instance

    Raises:
        UnknownTimezoneError: If the name cannot be resolved to a loadable zone
    """
    name = TimezoneAliases.resolve(tz_name or DEFAULT_ENGINE_TIMEZONE)
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise UnknownTimezoneError(f"Unknown timezone: {tz_name!r}") from e


def civil_today(now: datetime.datetime, tz_name: str | None = None) -> datetime.date:
    """Return the calendar date observed at instant ``now`` in the given zone.

    Naive datetimes are treated as UTC.

    Examples:
        >>> civil_today(datetime.datetime(2026, 1, 27, 3, 0, tzinfo=datetime.timezone.utc))
        datetime.date(2026, 1, 26)
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    return now.astimezone(resolve_zone(tz_name)).date()


def parse_date_key(key: str | datetime.date) -> datetime.date:
    """Parse a ``YYYY-MM-DD`` key into a date.

    Dates pass through unchanged (datetimes are reduced to their date part).

    Raises:
        InvalidDateKeyError: If the key is empty or malformed
    """
    if isinstance(key, datetime.datetime):
        return key.date()
    if isinstance(key, datetime.date):
        return key
    if not key or not isinstance(key, str):
        raise InvalidDateKeyError(f"Invalid date key: {key!r}")
    try:
        return datetime.datetime.strptime(key.strip()[:10], DATE_KEY_FORMAT).date()
    except ValueError as e:
        raise InvalidDateKeyError(f"Invalid date key: {key!r}") from e


def try_parse_date_key(key: str | datetime.date | None) -> datetime.date | None:
    """Lenient variant of :func:`parse_date_key` that returns None on bad input."""
    if key is None:
        return None
    try:
        return parse_date_key(key)
    except InvalidDateKeyError:
        logger.debug("Ignoring malformed date key %r", key)
        return None


def format_date_key(value: datetime.date) -> str:
    """Format a date as a ``YYYY-MM-DD`` key."""
    return value.strftime(DATE_KEY_FORMAT)


def add_days(value: datetime.date, days: int) -> datetime.date:
    return value + datetime.timedelta(days=days)


def sunday_weekday_index(value: datetime.date) -> int:
    """Return the weekday of ``value`` with Sunday=0 through Saturday=6."""
    return (value.weekday() + 1) % 7


def start_of_week(value: datetime.date) -> datetime.date:
    """Return the Sunday starting the week that contains ``value``."""
    return value - datetime.timedelta(days=sunday_weekday_index(value))


def weekday_name(index: int) -> str:
    return WEEKDAY_NAMES[index]
