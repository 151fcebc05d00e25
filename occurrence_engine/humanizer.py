"""Human-readable labels for recurrence descriptors.

Labels are derived from the same descriptor the expander consumes so what an
event card says always matches the dates it shows.
"""

import datetime
import logging
from typing import Optional, Union

from .core.timezone_utils import add_days, parse_date_key, sunday_weekday_index, weekday_name
from .models import Frequency, RecurrenceDescriptor
from .rrule_parser import ORDINAL_WORDS

logger = logging.getLogger(__name__)

# Canonical keyword token for each ordinal the keyword dialect understands
_RULE_TOKENS = {value: word for word, value in ORDINAL_WORDS.items() if word[0].isdigit() or value < 0}

# Fixed English abbreviations, independent of the process locale
MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def ordinal_suffix(number: int) -> str:
    """Return ``number`` with its English ordinal suffix (1st, 2nd, 11th, 23rd)."""
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def ordinal_label(ordinal: int) -> str:
    if ordinal == -1:
        return "Last"
    if ordinal < 0:
        return f"{ordinal_suffix(-ordinal)} to Last"
    return ordinal_suffix(ordinal)


def _sorted_ordinals(ordinals: tuple[int, ...]) -> list[int]:
    """Positive ordinals ascending, then counted-from-end ones ("last" at the very end)."""
    positives = sorted(o for o in ordinals if o > 0)
    negatives = sorted(o for o in ordinals if o < 0)
    return positives + negatives


def ordinals_to_rule_text(ordinals: tuple[int, ...]) -> str:
    """Build keyword rule text such as ``1st/3rd`` or ``2nd/last``.

    Ordinals the keyword dialect cannot express are left out.
    """
    return "/".join(_RULE_TOKENS[o] for o in _sorted_ordinals(ordinals) if o in _RULE_TOKENS)


def _month_day_label(month_day: int) -> str:
    if month_day == -1:
        return "last day"
    if month_day < 0:
        return f"{ordinal_suffix(-month_day)} to last day"
    return ordinal_suffix(month_day)


def _day_names(weekdays: tuple[int, ...]) -> Optional[str]:
    names = [weekday_name(d) for d in weekdays if 0 <= d <= 6]
    return " & ".join(names) if names else None


def _mixed_weekday_label(entries: tuple[tuple[Optional[int], int], ...]) -> str:
    """Label monthly entries naming different weekdays, e.g. 1st Tuesday & 3rd Thursday."""
    parts = []
    for ordinal, weekday in entries:
        if not 0 <= weekday <= 6:
            logger.debug("Leaving out-of-range weekday %r out of the label", weekday)
            continue
        name = weekday_name(weekday)
        parts.append(f"Every {name}" if ordinal is None else f"{ordinal_label(ordinal)} {name}")
    return f"{' & '.join(parts)} of the Month"


def label_for(descriptor: Optional[RecurrenceDescriptor]) -> str:
    """Return the display label for a schedule.

    Examples:
        Every Monday / Every Monday & Wednesday / Every Other Monday /
        1st Saturday of the Month / 1st & 3rd Tuesdays /
        1st Tuesday & 3rd Thursday of the Month / Custom Schedule / One-time
    """
    if descriptor is None:
        return "One-time"

    frequency = descriptor.frequency
    day = _day_names(descriptor.weekdays)

    if frequency == Frequency.NONE:
        return "Schedule TBD"
    if frequency == Frequency.CUSTOM:
        return "Custom Schedule"

    if frequency == Frequency.BIWEEKLY or (frequency == Frequency.WEEKLY and descriptor.interval == 2):
        return f"Every Other {day}" if day else "Every Other Week"

    if frequency == Frequency.WEEKLY:
        if descriptor.interval > 1:
            every = f"Every {descriptor.interval} Weeks"
            return f"{every} on {day}" if day else every
        return f"Every {day}" if day else "Weekly"

    # Ordinal-monthly
    if len({weekday for _, weekday in descriptor.byday}) > 1:
        return _mixed_weekday_label(descriptor.byday)
    if descriptor.ordinals and day:
        labels = [ordinal_label(o) for o in _sorted_ordinals(descriptor.ordinals)]
        if len(labels) == 1:
            return f"{labels[0]} {day} of the Month"
        return f"{' & '.join(labels)} {day}s"
    if descriptor.month_days:
        days = " & ".join(_month_day_label(d) for d in descriptor.month_days)
        return f"Monthly on the {days}"
    return f"{day} (Monthly)" if day else "Monthly"


def format_date_group_header(date_key: Union[str, datetime.date], today: datetime.date) -> str:
    """Return the heading for a day of occurrences.

    Args:
        date_key: ``YYYY-MM-DD`` key or date of the group
        today: Civil "today" in the engine timezone

    Returns:
        "Today", "Tomorrow", or a short date such as "Fri, Jan 3"

    Raises:
        InvalidDateKeyError: If ``date_key`` is malformed
    """
    value = parse_date_key(date_key)
    if value == today:
        return "Today"
    if value == add_days(today, 1):
        return "Tomorrow"
    weekday = weekday_name(sunday_weekday_index(value))[:3]
    return f"{weekday}, {MONTH_ABBREVIATIONS[value.month - 1]} {value.day}"
