"""timebox_sync - calendar overlay synchronization engine for outliner task blocks.

Keeps a published list of calendar events in step with scheduled task blocks in a
plain-text outliner store, merges read-only iCalendar feeds into the same timeline
and applies drag/resize/edit intents back to the text with optimistic feedback.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    This is the only place a console handler is installed. It sets the colored
    formatter and a default level so that import-time errors and early startup
    messages are visible; core.logging_config.configure_logging only adjusts
    levels afterwards.

    The TIMEBOX_DEBUG environment variable (truthy values: "1", "true", "yes")
    forces DEBUG verbosity to surface codec/feed debug logs during troubleshooting.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("TIMEBOX_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure basic handler if no handlers are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
