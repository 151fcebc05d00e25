"""Override store interface and an in-memory reference adapter.

The engine only reads overrides, once per event per window. Writes (upsert on
cancel/reschedule, delete on revert) belong to the host application; the
in-memory adapter implements both sides so tests and local tooling can drive
the full flow.
"""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Iterable
from typing import Any, Optional, Protocol

from .core.timezone_utils import parse_date_key
from .models import OccurrenceOverride, OverrideKey, OverrideStatus

logger = logging.getLogger(__name__)


class OverrideStore(Protocol):
    """Protocol for the per-date override read path."""

    def fetch_overrides(
        self, event_id: str, start_key: str, end_key: str
    ) -> Optional[list[OccurrenceOverride]]:
        """Return every override of an event whose date lies in ``[start_key, end_key]``.

        Args:
            event_id: Event identifier
            start_key: Inclusive window start as ``YYYY-MM-DD``
            end_key: Inclusive window end as ``YYYY-MM-DD``

        Returns:
            Overrides in any order; None or an empty list means "no overrides"
        """
        ...


def fetch_overrides_safely(
    store: Optional[OverrideStore], event_id: str, start_key: str, end_key: str
) -> list[OccurrenceOverride]:
    """Fetch overrides, treating a missing store or a None response as empty.

    Transport errors raised by the store propagate to the caller.
    """
    if store is None:
        return []
    result = store.fetch_overrides(event_id, start_key, end_key)
    return list(result) if result else []


class InMemoryOverrideStore:
    """Thread-safe dict-backed override store keyed by (event_id, date_key)."""

    def __init__(self, overrides: Optional[Iterable[OccurrenceOverride]] = None) -> None:
        self._lock = threading.Lock()
        self._store: dict[OverrideKey, OccurrenceOverride] = {}
        for override in overrides or ():
            self._store[override.key] = override

    def upsert(
        self,
        event_id: str,
        date_key: str | datetime.date,
        status: OverrideStatus | str = OverrideStatus.NORMAL,
        **fields: Any,
    ) -> OccurrenceOverride:
        """Create or replace the override for one event date.

        Args:
            event_id: Event identifier
            date_key: Date as ``YYYY-MM-DD`` or a date
            status: Override status, defaults to normal
            **fields: override_start_time, override_cover_media, override_notes, patch

        Returns:
            The stored override

        Raises:
            InvalidDateKeyError: If date_key is malformed
        """
        override = OccurrenceOverride(
            event_id=event_id, date_key=parse_date_key(date_key), status=status, **fields
        )
        with self._lock:
            self._store[override.key] = override
        logger.debug(
            "Stored %s override for %s on %s", override.status.value, event_id, override.date_key
        )
        return override

    def cancel(self, event_id: str, date_key: str | datetime.date) -> OccurrenceOverride:
        """Mark one event date as cancelled, keeping any other override fields."""
        key = OverrideKey(event_id, parse_date_key(date_key))
        with self._lock:
            existing = self._store.get(key)
            if existing is None:
                override = OccurrenceOverride(
                    event_id=event_id, date_key=key.date_key, status=OverrideStatus.CANCELLED
                )
            else:
                override = existing.model_copy(update={"status": OverrideStatus.CANCELLED})
            self._store[key] = override
        return override

    def delete(self, event_id: str, date_key: str | datetime.date) -> bool:
        """Remove an override, reverting the date to the series defaults.

        Returns:
            True if an override was removed
        """
        key = OverrideKey(event_id, parse_date_key(date_key))
        with self._lock:
            removed = self._store.pop(key, None)
        return removed is not None

    def fetch_overrides(
        self, event_id: str, start_key: str, end_key: str
    ) -> list[OccurrenceOverride]:
        start = parse_date_key(start_key)
        end = parse_date_key(end_key)
        with self._lock:
            found = [
                override
                for key, override in self._store.items()
                if key.event_id == event_id and start <= key.date_key <= end
            ]
        return sorted(found, key=lambda o: o.date_key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
