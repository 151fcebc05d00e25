"""Cardinality self-check for expanded occurrences.

A confident, unbounded recurring series should produce at least two dates in
any window long enough to contain two of them. When it does not, something
upstream (rule text, weekday, anchor) silently under-generated. The auditor
only logs; it never changes expansion output.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from .core.config_manager import EngineConfig
from .core.timezone_utils import format_date_key
from .models import Frequency, RecurrenceDescriptor

logger = logging.getLogger(__name__)

VIOLATION_PREFIX = "[RECURRENCE INVARIANT VIOLATION]"

MIN_EXPECTED_OCCURRENCES = 2

# Windows shorter than this always pass for ordinal-monthly series
ORDINAL_MONTHLY_MIN_WINDOW_DAYS = 56


@dataclass(frozen=True)
class AuditFinding:
    """A detected shortfall for one event and window."""

    event_label: str
    frequency: Frequency
    interval: int
    window_length_days: int
    observed_count: int
    expected_minimum: int
    window_start: Optional[datetime.date] = None
    window_end: Optional[datetime.date] = None

    @property
    def message(self) -> str:
        bounds = ""
        if self.window_start is not None and self.window_end is not None:
            bounds = f" ({format_date_key(self.window_start)} to {format_date_key(self.window_end)})"
        return (
            f"{VIOLATION_PREFIX} Event {self.event_label!r}: {self.frequency.value} "
            f"(interval {self.interval}) in {self.window_length_days}-day window{bounds}. "
            f"Expected ≥{self.expected_minimum}, got {self.observed_count}"
        )


def minimum_window_days(descriptor: RecurrenceDescriptor) -> Optional[int]:
    """Shortest window in which a descriptor must yield two occurrences.

    Returns:
        Day count, or None when the descriptor is never audited
    """
    if descriptor.frequency == Frequency.ORDINAL_MONTHLY:
        return ORDINAL_MONTHLY_MIN_WINDOW_DAYS
    if descriptor.frequency == Frequency.BIWEEKLY:
        return 14 * max(descriptor.interval, 2)
    if descriptor.frequency == Frequency.WEEKLY:
        return 14 * descriptor.interval
    return None


class InvariantAuditor:
    """Flags confident recurring series that produced too few occurrences."""

    def __init__(self, enabled: Optional[bool] = None, config: Optional[EngineConfig] = None):
        """Initialize auditor.

        Args:
            enabled: Force logging on or off; None follows configuration
            config: Engine configuration used when ``enabled`` is None
        """
        if enabled is None:
            enabled = (config or EngineConfig()).should_audit()
        self.enabled = enabled

    def audit(
        self,
        descriptor: Optional[RecurrenceDescriptor],
        observed_count: int,
        window_length_days: int,
        event_label: str,
        window_start: Optional[datetime.date] = None,
        window_end: Optional[datetime.date] = None,
    ) -> Optional[AuditFinding]:
        """Check one expansion result.

        Args:
            descriptor: Descriptor that was expanded
            observed_count: Number of occurrences produced
            window_length_days: Inclusive window length
            event_label: Event id or title for the log line
            window_start: Optional window start for the log line
            window_end: Optional window end for the log line

        Returns:
            AuditFinding when the result is short, otherwise None. The finding is
            logged once at WARNING when the auditor is enabled.
        """
        if descriptor is None or descriptor.is_bounded or not descriptor.is_confident:
            return None

        minimum_days = minimum_window_days(descriptor)
        if minimum_days is None or window_length_days < minimum_days:
            return None

        if observed_count >= MIN_EXPECTED_OCCURRENCES:
            return None

        finding = AuditFinding(
            event_label=event_label,
            frequency=descriptor.frequency,
            interval=descriptor.interval,
            window_length_days=window_length_days,
            observed_count=observed_count,
            expected_minimum=MIN_EXPECTED_OCCURRENCES,
            window_start=window_start,
            window_end=window_end,
        )
        if self.enabled:
            logger.warning("%s", finding.message)
        return finding
