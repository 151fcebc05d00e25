"""
Central logging configuration for the occurrence engine.

Installs a colorized console handler when nothing else has configured logging
and sets the levels of the engine's module loggers. The engine itself only ever
logs through ``logging.getLogger(__name__)``; this module is for hosts and
local tooling that want readable console output.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

ENGINE_LOGGER_NAME = "occurrence_engine"

ENGINE_MODULES = [
    "occurrence_engine",
    "occurrence_engine.models",
    "occurrence_engine.rrule_parser",
    "occurrence_engine.expander",
    "occurrence_engine.merger",
    "occurrence_engine.humanizer",
    "occurrence_engine.auditor",
    "occurrence_engine.deduplicator",
    "occurrence_engine.override_store",
    "occurrence_engine.pipeline",
    "occurrence_engine.core.config_manager",
    "occurrence_engine.core.timezone_utils",
]

CONSOLE_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_console_handler(level: int = logging.NOTSET) -> logging.Handler:
    """Create a stderr handler using the engine's colorized format."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    return handler


def configure_engine_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for the occurrence engine.

    Args:
        debug_mode: Whether to enable debug logging for engine modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        OCCURRENCE_ENGINE_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        OCCURRENCE_ENGINE_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("OCCURRENCE_ENGINE_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("OCCURRENCE_ENGINE_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in _VALID_LEVELS:
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Leave handlers alone if the host already configured logging
    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))

    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_MODULES:
        logging.getLogger(module).setLevel(engine_level)

    if final_debug:
        root_logger.info("Debug logging enabled for occurrence_engine modules")
    else:
        root_logger.debug("Production logging configuration applied")


def reset_logging_to_debug() -> None:
    """Reset the root and engine loggers to DEBUG level for troubleshooting."""
    logging.getLogger().setLevel(logging.DEBUG)
    for module in ENGINE_MODULES:
        logging.getLogger(module).setLevel(logging.DEBUG)

    logging.getLogger().info("All engine loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ENGINE_MODULES:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
