import datetime
from collections.abc import Generator
from typing import Any, Optional

import pytest

from occurrence_engine.core.config_manager import EngineConfig
from occurrence_engine.models import DateWindow, Frequency, OccurrenceOverride, RecurrenceDescriptor
from occurrence_engine.override_store import InMemoryOverrideStore


def pytest_configure(config: Any) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: End-to-end pipeline tests")


@pytest.fixture(autouse=True)
def clean_engine_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure engine environment variables do not leak between tests."""
    for key in (
        "OCCURRENCE_ENGINE_TIMEZONE",
        "OCCURRENCE_ENGINE_WINDOW_DAYS",
        "OCCURRENCE_ENGINE_MAX_OCCURRENCES",
        "OCCURRENCE_ENGINE_MAX_TOTAL_OCCURRENCES",
        "OCCURRENCE_ENGINE_MAX_EVENTS",
        "OCCURRENCE_ENGINE_ENV",
        "OCCURRENCE_ENGINE_AUDIT",
        "OCCURRENCE_ENGINE_DEBUG",
        "OCCURRENCE_ENGINE_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def engine_config() -> EngineConfig:
    """Deterministic configuration with auditing forced on.

    Tests that assert on auditor log output rely on ``audit_enabled=True``
    because auditing is otherwise silent under pytest.
    """
    return EngineConfig(timezone="America/Denver", audit_enabled=True)


class CountingOverrideStore:
    """Override store wrapper that records every fetch it serves."""

    def __init__(self, inner: Optional[InMemoryOverrideStore] = None) -> None:
        self.inner = inner if inner is not None else InMemoryOverrideStore()
        self.fetches: list[tuple[str, str, str]] = []

    def fetch_overrides(self, event_id: str, start_key: str, end_key: str) -> list[OccurrenceOverride]:
        self.fetches.append((event_id, start_key, end_key))
        return self.inner.fetch_overrides(event_id, start_key, end_key)


@pytest.fixture
def override_store() -> InMemoryOverrideStore:
    """Empty in-memory override store."""
    return InMemoryOverrideStore()


@pytest.fixture
def counting_store(override_store: InMemoryOverrideStore) -> CountingOverrideStore:
    """Counting wrapper around ``override_store``."""
    return CountingOverrideStore(override_store)


@pytest.fixture
def weekly_monday() -> RecurrenceDescriptor:
    """Confident weekly descriptor on Monday."""
    return RecurrenceDescriptor(frequency=Frequency.WEEKLY, weekday=1)


@pytest.fixture
def first_saturday() -> RecurrenceDescriptor:
    """Confident first-Saturday-of-the-month descriptor."""
    return RecurrenceDescriptor(frequency=Frequency.ORDINAL_MONTHLY, weekday=6, ordinals=(1,))


@pytest.fixture
def q1_2026() -> DateWindow:
    """Window covering January through March 2026."""
    return DateWindow(start=datetime.date(2026, 1, 1), end=datetime.date(2026, 3, 31))
