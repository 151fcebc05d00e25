"""Configuration management for the occurrence engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .timezone_utils import DEFAULT_ENGINE_TIMEZONE

logger = logging.getLogger(__name__)

ENV_PREFIX = "OCCURRENCE_ENGINE_"

# Expansion limits
DEFAULT_WINDOW_DAYS = 90
MAX_OCCURRENCES_PER_EVENT = 40
MAX_TOTAL_OCCURRENCES = 500
MAX_EVENTS = 200

# Environments in which the invariant auditor stays quiet by default
QUIET_ENVIRONMENTS = frozenset({"test", "testing", "ci"})


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        if key:
            result[key] = val.strip().strip('"').strip("'")

    return result


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects."""
    if config is None:
        return default
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


@dataclass(frozen=True)
class EngineConfig:
    """Settings that shape expansion windows, limits and auditing."""

    timezone: str = DEFAULT_ENGINE_TIMEZONE
    default_window_days: int = DEFAULT_WINDOW_DAYS
    max_occurrences_per_event: int = MAX_OCCURRENCES_PER_EVENT
    max_total_occurrences: int = MAX_TOTAL_OCCURRENCES
    max_events: int = MAX_EVENTS
    environment: str = "production"
    audit_enabled: bool | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> EngineConfig:
        """Create config from a settings object or dict.

        Missing keys fall back to the dataclass defaults.
        """
        return cls(
            timezone=get_config_value(settings, "timezone", DEFAULT_ENGINE_TIMEZONE),
            default_window_days=int(
                get_config_value(settings, "default_window_days", DEFAULT_WINDOW_DAYS)
            ),
            max_occurrences_per_event=int(
                get_config_value(settings, "max_occurrences_per_event", MAX_OCCURRENCES_PER_EVENT)
            ),
            max_total_occurrences=int(
                get_config_value(settings, "max_total_occurrences", MAX_TOTAL_OCCURRENCES)
            ),
            max_events=int(get_config_value(settings, "max_events", MAX_EVENTS)),
            environment=get_config_value(settings, "environment", "production"),
            audit_enabled=get_config_value(settings, "audit_enabled", None),
        )

    @property
    def is_quiet_environment(self) -> bool:
        return self.environment.lower() in QUIET_ENVIRONMENTS

    def should_audit(self) -> bool:
        """Return whether invariant violations should be logged.

        An explicit ``audit_enabled`` wins. Otherwise auditing is on only in a
        deployed runtime: not in a test/ci environment, not with ``CI`` set,
        and not under pytest.
        """
        if self.audit_enabled is not None:
            return self.audit_enabled
        if self.is_quiet_environment:
            return False
        if os.environ.get("CI"):
            return False
        return "PYTEST_CURRENT_TEST" not in os.environ


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return None


class ConfigManager:
    """Manages engine configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - OCCURRENCE_ENGINE_TIMEZONE -> 'timezone'
        - OCCURRENCE_ENGINE_WINDOW_DAYS -> 'default_window_days' (int)
        - OCCURRENCE_ENGINE_MAX_OCCURRENCES -> 'max_occurrences_per_event' (int)
        - OCCURRENCE_ENGINE_MAX_TOTAL_OCCURRENCES -> 'max_total_occurrences' (int)
        - OCCURRENCE_ENGINE_MAX_EVENTS -> 'max_events' (int)
        - OCCURRENCE_ENGINE_ENV -> 'environment'
        - OCCURRENCE_ENGINE_AUDIT -> 'audit_enabled' (bool)

        Returns:
            Configuration dictionary accepted by EngineConfig.from_settings
        """
        cfg: dict[str, Any] = {}

        tz_name = os.environ.get(f"{ENV_PREFIX}TIMEZONE")
        if tz_name:
            cfg["timezone"] = tz_name

        for env_key, cfg_key in (
            ("WINDOW_DAYS", "default_window_days"),
            ("MAX_OCCURRENCES", "max_occurrences_per_event"),
            ("MAX_TOTAL_OCCURRENCES", "max_total_occurrences"),
            ("MAX_EVENTS", "max_events"),
        ):
            raw = os.environ.get(f"{ENV_PREFIX}{env_key}")
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s%s=%r; ignoring", ENV_PREFIX, env_key, raw)
                continue
            if value < 1:
                logger.warning("Invalid %s%s=%r; ignoring", ENV_PREFIX, env_key, raw)
                continue
            cfg[cfg_key] = value

        environment = os.environ.get(f"{ENV_PREFIX}ENV")
        if environment:
            cfg["environment"] = environment

        audit = os.environ.get(f"{ENV_PREFIX}AUDIT")
        if audit:
            parsed = _parse_bool(audit)
            if parsed is None:
                logger.warning("Invalid %sAUDIT=%r; ignoring", ENV_PREFIX, audit)
            else:
                cfg["audit_enabled"] = parsed

        return cfg

    def load_full_config(self) -> EngineConfig:
        """Load .env file and build an EngineConfig from the environment.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        return EngineConfig.from_settings(self.build_config_from_env())
