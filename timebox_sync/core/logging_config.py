"""
Central logging configuration for timebox_sync.

Suppresses verbose debug logs from third-party libraries while keeping
important diagnostic information from the synchronization engine.
"""

import logging
import os
from typing import Optional

# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.WARNING,
    "charset_normalizer": logging.WARNING,
}

ENGINE_MODULES = [
    "timebox_sync",
    "timebox_sync.schedule",
    "timebox_sync.feeds",
    "timebox_sync.sync",
    "timebox_sync.store",
]


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for timebox_sync.

    Args:
        debug_mode: Whether to enable debug logging for timebox_sync modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        TIMEBOX_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        TIMEBOX_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("TIMEBOX_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("TIMEBOX_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers belong to timebox_sync._init_logging; only levels change here
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(NOISY_LOGGERS)
    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for timebox_sync modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["timebox_sync", *NOISY_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
