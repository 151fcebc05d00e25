"""Occurrence expansion for recurring events.

Turns a :class:`RecurrenceDescriptor` plus an optional anchor date into the
ordered list of calendar dates that fall inside a window. Pattern dates come
from a ``dateutil.rrule`` built from the descriptor and sliced to the window;
callers derive the window from an injected "today".
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import Optional

from dateutil import rrule as rr
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from .core.timezone_utils import sunday_weekday_index
from .models import DateWindow, Frequency, Occurrence, RecurrenceDescriptor

logger = logging.getLogger(__name__)

# Sunday-first, indexed by the engine's weekday numbering
RELATIVEDELTA_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)
RRULE_WEEKDAYS = (rr.SU, rr.MO, rr.TU, rr.WE, rr.TH, rr.FR, rr.SA)

# Stable phase reference for multi-week and multi-month strides when no anchor exists
EPOCH_WEEK_START = datetime.date(1970, 1, 4)

# Ordinals beyond +/-5 never resolve to a real nth weekday
_MAX_ORDINAL = 5


def nth_weekday_of_month(year: int, month: int, weekday: int, ordinal: int) -> Optional[datetime.date]:
    """Return the ``ordinal``-th ``weekday`` of a month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        weekday: 0=Sunday .. 6=Saturday
        ordinal: 1..5 from the start of the month, -1..-5 from the end

    Returns:
        The date, or None when the month has no such weekday (e.g. a 5th
        Monday in a four-Monday month)
    """
    if ordinal == 0 or not 0 <= weekday <= 6:
        return None

    first = datetime.date(year, month, 1)
    day = RELATIVEDELTA_WEEKDAYS[weekday]
    if ordinal > 0:
        candidate = first + relativedelta(weekday=day(+ordinal))
    else:
        candidate = first + relativedelta(day=31, weekday=day(ordinal))

    if candidate.year != year or candidate.month != month:
        return None
    return candidate


def _as_datetime(value: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(value, datetime.time())


def _rrule_weekdays(entries: Iterable[tuple[Optional[int], int]], monthly: bool) -> list[rr.weekday]:
    """Map (ordinal, weekday) entries to rrule weekdays, dropping unusable ordinals."""
    days = []
    for ordinal, weekday in entries:
        day = RRULE_WEEKDAYS[weekday]
        if not monthly or ordinal is None:
            days.append(day)
        elif 0 < abs(ordinal) <= _MAX_ORDINAL:
            days.append(day(ordinal))
    return list(dict.fromkeys(days))


def build_rrule(
    descriptor: RecurrenceDescriptor,
    anchor: Optional[datetime.date],
    start: datetime.date,
    weekday: Optional[int],
) -> tuple[Optional[rr.rrule], bool]:
    """Build the rrule a descriptor describes.

    The rule starts at the anchor when there is one. Without an anchor a
    multi-week or multi-month stride starts at a fixed epoch so the phase is
    the same whatever window is requested; otherwise it starts at ``start``.

    Args:
        descriptor: Parsed weekly, biweekly or ordinal-monthly schedule
        anchor: Resolved anchor date, if any
        start: First date the caller will ask for
        weekday: Weekday to use when the descriptor names none

    Returns:
        (rule, confident); rule is None when nothing can be generated
    """
    confident = descriptor.is_confident
    interval = 2 if descriptor.frequency == Frequency.BIWEEKLY else descriptor.interval

    entries = descriptor.day_entries
    if not entries and weekday is not None:
        entries = tuple((ordinal, weekday) for ordinal in descriptor.ordinals) or ((None, weekday),)

    bound = descriptor.bounded_by
    count = bound.count if bound else None
    # dateutil deprecates COUNT with UNTIL; expand_occurrences clips to UNTIL itself
    until = bound.until if bound and count is None else None
    options = {
        "wkst": rr.SU,
        "until": _as_datetime(until) if until is not None else None,
    }

    freq = rr.WEEKLY
    has_ordinals = any(ordinal is not None for ordinal, _ in entries)
    if descriptor.frequency == Frequency.ORDINAL_MONTHLY and (
        descriptor.byday or has_ordinals or descriptor.month_days
    ):
        freq = rr.MONTHLY
        byweekday = _rrule_weekdays(entries, monthly=True) if descriptor.byday or has_ordinals else []
        if not byweekday and not descriptor.month_days:
            return None, confident
        options["byweekday"] = byweekday or None
        options["bymonthday"] = descriptor.month_days or None
    else:
        if descriptor.frequency == Frequency.ORDINAL_MONTHLY:
            logger.debug("Monthly descriptor without ordinals, walking weekly")
            interval, confident = 1, False
        options["byweekday"] = _rrule_weekdays(entries, monthly=False)

    dtstart = anchor or (EPOCH_WEEK_START if interval > 1 else start)
    rule = rr.rrule(freq, dtstart=_as_datetime(dtstart), interval=interval, **options)

    if count is not None:
        if anchor is None:
            # Without an anchor the series starts at the first in-phase date of the window
            first = rule.after(_as_datetime(start), inc=True)
            if first is None:
                return None, confident
            rule = rule.replace(dtstart=first, count=count)
        else:
            rule = rule.replace(count=count)
    return rule, confident


def _custom_occurrences(
    dates: Iterable[datetime.date], window: DateWindow, max_occurrences: Optional[int]
) -> list[Occurrence]:
    selected = sorted({d for d in dates if window.contains(d)})
    if max_occurrences is not None:
        selected = selected[:max_occurrences]
    return [Occurrence(date_key=d) for d in selected]


def expand_occurrences(
    descriptor: Optional[RecurrenceDescriptor],
    anchor_date: Optional[datetime.date],
    custom_dates: Optional[Iterable[datetime.date]],
    max_occurrences: Optional[int],
    window: DateWindow,
) -> list[Occurrence]:
    """Expand a recurrence into the occurrences that fall inside ``window``.

    Args:
        descriptor: Parsed schedule, or None for a one-off event
        anchor_date: Resolved single date on the event, if any
        custom_dates: Explicit dates for custom schedules
        max_occurrences: Upper bound on the number of results
        window: Inclusive date range to expand into

    Returns:
        Occurrences in ascending date order. An empty list is a valid result;
        bad records never raise.
    """
    if window.is_empty:
        return []

    # A resolved anchor inside the window is the single source of truth
    if anchor_date is not None and window.contains(anchor_date):
        return [Occurrence(date_key=anchor_date)]

    if descriptor is None or descriptor.frequency == Frequency.NONE:
        return []

    if descriptor.frequency == Frequency.CUSTOM:
        dates = list(custom_dates) if custom_dates else list(descriptor.custom_dates)
        return _custom_occurrences(dates, window, max_occurrences)

    if any(not 0 <= day <= 6 for day in descriptor.weekdays):
        logger.debug("Weekday out of range in %r, no occurrences", descriptor.weekdays)
        return []

    # Series start: pattern dates never precede the anchor
    start = window.start
    if anchor_date is not None and anchor_date > start:
        start = anchor_date
    if start > window.end:
        return []

    weekday = descriptor.weekday
    needs_weekday = descriptor.frequency != Frequency.ORDINAL_MONTHLY or not descriptor.month_days
    guessed = weekday is None and not descriptor.byday and needs_weekday
    if guessed:
        weekday = sunday_weekday_index(anchor_date or start)
        logger.debug("No weekday on %s descriptor, guessing %d", descriptor.frequency.value, weekday)

    rule, confident = build_rrule(descriptor, anchor_date, start, weekday)
    if rule is None:
        return []

    end = window.end
    bound = descriptor.bounded_by
    if bound and bound.until is not None:
        end = min(end, bound.until)
    if start > end:
        return []

    dates = [d.date() for d in rule.between(_as_datetime(start), _as_datetime(end), inc=True)]
    if max_occurrences is not None:
        dates = dates[:max_occurrences]
    confident = confident and not guessed

    logger.debug(
        "Expanded %s descriptor into %d occurrence(s) for %s..%s",
        descriptor.frequency.value,
        len(dates),
        window.start_key,
        window.end_key,
    )
    return [Occurrence(date_key=d, confident=confident) for d in dates]
