"""Recurrence rule parsing for the occurrence engine.

Two dialects are accepted:

* Structured ``KEY=VALUE`` rules in the RFC 5545 style, e.g.
  ``FREQ=MONTHLY;BYDAY=1SA`` or ``RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO``.
* Legacy free-form keywords stored by older event forms, e.g. ``weekly``,
  ``every other week``, ``2nd/4th`` or ``1st & 3rd``.

Parsing never raises. Text that does not describe an expandable schedule yields
``None`` and the caller treats the event as a one-off.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from dateutil import parser as date_parser

from .models import Frequency, RecurrenceBound, RecurrenceDescriptor

logger = logging.getLogger(__name__)

# Sunday-first to match the engine's weekday numbering
BYDAY_CODES = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")

_BYDAY_PATTERN = re.compile(r"^([+-]?\d{1,2})?(SU|MO|TU|WE|TH|FR|SA)$")

# Ordinals beyond +/-5 never resolve to a real nth weekday
_MAX_ORDINAL = 5

ORDINAL_WORDS: dict[str, int] = {
    "1st": 1,
    "2nd": 2,
    "3rd": 3,
    "4th": 4,
    "5th": 5,
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "last": -1,
}

WEEKDAY_ALIASES: dict[str, int] = {
    "sunday": 0,
    "sun": 0,
    "su": 0,
    "monday": 1,
    "mon": 1,
    "mo": 1,
    "tuesday": 2,
    "tue": 2,
    "tues": 2,
    "tu": 2,
    "wednesday": 3,
    "wed": 3,
    "we": 3,
    "thursday": 4,
    "thu": 4,
    "thur": 4,
    "thurs": 4,
    "th": 4,
    "friday": 5,
    "fri": 5,
    "fr": 5,
    "saturday": 6,
    "sat": 6,
    "sa": 6,
}

WEEKLY_KEYWORDS = frozenset({"weekly", "every week"})
BIWEEKLY_KEYWORDS = frozenset({"biweekly", "bi-weekly", "every other week", "every 2 weeks"})
MONTHLY_KEYWORDS = frozenset({"monthly", "every month"})
NONE_KEYWORDS = frozenset({"", "none", "one-time", "once"})

_TOKEN_SPLIT = re.compile(r"\s*(?:/|&|,|\band\b)\s*|\s+")


def weekday_from_value(value: Any) -> Optional[int]:
    """Resolve a weekday name, code or index to Sunday=0 .. Saturday=6.

    Args:
        value: "Monday", "mon", "MO", 1 or "1"

    Returns:
        Weekday index, or None when the value is not recognisable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= 6 else None

    text = str(value).strip().lower()
    if text.isdigit():
        index = int(text)
        return index if 0 <= index <= 6 else None
    if text.endswith("s") and text[:-1] in WEEKDAY_ALIASES and len(text) > 3:
        text = text[:-1]
    return WEEKDAY_ALIASES.get(text)


def split_rule_parts(rule_text: str) -> dict[str, str]:
    """Split a structured rule into its ``KEY=VALUE`` components.

    Accepts ``;`` or newline separators and an optional ``RRULE:`` prefix per
    line. Parts without ``=`` are skipped.
    """
    parts: dict[str, str] = {}
    for raw in re.split(r"[;\n]", rule_text):
        part = raw.strip()
        if part.upper().startswith("RRULE:"):
            part = part[len("RRULE:") :]
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        key = key.strip().lower()
        if key:
            parts[key] = value.strip()
    return parts


def parse_ordinal_tokens(text: str) -> tuple[tuple[int, ...], Optional[int]]:
    """Parse free-form ordinal text such as ``2nd/4th`` or ``1st & 3rd Tuesdays``.

    Returns:
        (ordinals, weekday) where ordinals keeps the written order and weekday is
        the first day name found, if any. Unrecognised tokens are ignored.
    """
    ordinals: list[int] = []
    weekday: Optional[int] = None

    for token in _TOKEN_SPLIT.split(text.strip().lower()):
        if not token:
            continue
        if token in ORDINAL_WORDS:
            ordinal = ORDINAL_WORDS[token]
            if ordinal not in ordinals:
                ordinals.append(ordinal)
            continue
        if weekday is None:
            weekday = weekday_from_value(token)

    return tuple(ordinals), weekday


def _parse_interval(raw: Optional[str]) -> int:
    if not raw:
        return 1
    try:
        interval = int(raw)
    except ValueError:
        logger.debug("Ignoring malformed INTERVAL=%r", raw)
        return 1
    return interval if interval >= 1 else 1


def _parse_bound(parts: dict[str, str]) -> Optional[RecurrenceBound]:
    count: Optional[int] = None
    raw_count = parts.get("count")
    if raw_count:
        try:
            count = int(raw_count)
        except ValueError:
            logger.debug("Ignoring malformed COUNT=%r", raw_count)
        if count is not None and count < 1:
            count = None

    until = None
    raw_until = parts.get("until")
    if raw_until:
        try:
            until = date_parser.isoparse(raw_until).date()
        except (ValueError, OverflowError):
            logger.debug("Ignoring malformed UNTIL=%r", raw_until)

    if count is None and until is None:
        return None
    return RecurrenceBound(count=count, until=until)


def _parse_byday(raw: Optional[str]) -> list[tuple[Optional[int], int]]:
    """Parse BYDAY into ``(ordinal, weekday)`` entries, skipping malformed ones."""
    entries: list[tuple[Optional[int], int]] = []
    if not raw:
        return entries

    for item in raw.split(","):
        match = _BYDAY_PATTERN.match(item.strip().upper())
        if not match:
            logger.debug("Skipping malformed BYDAY entry %r", item)
            continue
        ordinal = int(match.group(1)) if match.group(1) else None
        if ordinal is not None and (ordinal == 0 or abs(ordinal) > _MAX_ORDINAL):
            logger.debug("Skipping out-of-range BYDAY ordinal %r", item)
            continue
        entries.append((ordinal, BYDAY_CODES.index(match.group(2))))
    return entries


def _parse_month_days(raw: Optional[str]) -> tuple[int, ...]:
    days: list[int] = []
    if not raw:
        return ()
    for item in raw.split(","):
        try:
            day = int(item.strip())
        except ValueError:
            logger.debug("Skipping malformed BYMONTHDAY entry %r", item)
            continue
        if day != 0 and -31 <= day <= 31:
            days.append(day)
    return tuple(days)


def _parse_structured(
    rule_text: str, fallback_weekday: Optional[int]
) -> Optional[RecurrenceDescriptor]:
    parts = split_rule_parts(rule_text)
    freq = parts.get("freq", "").upper()
    if not freq:
        logger.debug("Rule has no FREQ, treating as one-off: %r", rule_text)
        return None

    byday = _parse_byday(parts.get("byday"))
    weekday = byday[0][1] if byday else fallback_weekday
    interval = _parse_interval(parts.get("interval"))
    bound = _parse_bound(parts)

    if freq == "WEEKLY":
        frequency = Frequency.BIWEEKLY if interval == 2 else Frequency.WEEKLY
        # Ordinals have no meaning on a weekly rule
        return RecurrenceDescriptor(
            frequency=frequency,
            interval=interval,
            weekday=weekday,
            byday=tuple((None, day) for _, day in byday),
            bounded_by=bound,
            is_confident=weekday is not None,
            source_rule=rule_text,
        )

    if freq == "MONTHLY":
        ordinals = tuple(ordinal for ordinal, _ in byday if ordinal is not None)
        month_days = _parse_month_days(parts.get("bymonthday"))
        return RecurrenceDescriptor(
            frequency=Frequency.ORDINAL_MONTHLY,
            interval=interval,
            weekday=weekday,
            ordinals=ordinals,
            byday=tuple(byday),
            month_days=month_days,
            bounded_by=bound,
            is_confident=bool(byday) or bool(month_days),
            source_rule=rule_text,
        )

    logger.debug("Unsupported FREQ=%s, treating as one-off", freq)
    return None


def _parse_keyword(
    rule_text: str, fallback_weekday: Optional[int]
) -> Optional[RecurrenceDescriptor]:
    keyword = " ".join(rule_text.strip().lower().split())

    if keyword in NONE_KEYWORDS:
        if fallback_weekday is None:
            return None
        return RecurrenceDescriptor(
            frequency=Frequency.WEEKLY, weekday=fallback_weekday, source_rule=rule_text or None
        )

    if keyword in WEEKLY_KEYWORDS or keyword in BIWEEKLY_KEYWORDS:
        biweekly = keyword in BIWEEKLY_KEYWORDS
        return RecurrenceDescriptor(
            frequency=Frequency.BIWEEKLY if biweekly else Frequency.WEEKLY,
            interval=2 if biweekly else 1,
            weekday=fallback_weekday,
            is_confident=fallback_weekday is not None,
            source_rule=rule_text,
        )

    if keyword in MONTHLY_KEYWORDS:
        return RecurrenceDescriptor(
            frequency=Frequency.ORDINAL_MONTHLY,
            weekday=fallback_weekday,
            is_confident=False,
            source_rule=rule_text,
        )

    if keyword == "seasonal":
        return RecurrenceDescriptor(
            frequency=Frequency.NONE, weekday=fallback_weekday, is_confident=False, source_rule=rule_text
        )

    if keyword == "custom":
        return RecurrenceDescriptor(frequency=Frequency.CUSTOM, source_rule=rule_text)

    ordinals, named_weekday = parse_ordinal_tokens(keyword)
    if ordinals:
        weekday = named_weekday if named_weekday is not None else fallback_weekday
        return RecurrenceDescriptor(
            frequency=Frequency.ORDINAL_MONTHLY,
            weekday=weekday,
            ordinals=ordinals,
            is_confident=weekday is not None,
            source_rule=rule_text,
        )

    logger.debug("Unrecognised recurrence text, treating as one-off: %r", rule_text)
    return None


def parse_recurrence(
    rule_text: Optional[str], fallback_weekday: Any = None
) -> Optional[RecurrenceDescriptor]:
    """Parse recurrence text into a descriptor.

    Args:
        rule_text: Structured rule or legacy keyword; None is treated as empty
        fallback_weekday: Weekday of the owning event (index or name), used when
            the rule itself names none

    Returns:
        RecurrenceDescriptor, or None for a single/one-off event
    """
    fallback = weekday_from_value(fallback_weekday)
    text = (rule_text or "").strip()

    if "=" in text:
        return _parse_structured(text, fallback)
    return _parse_keyword(text, fallback)
