"""Package logging for PR Vigil.

Every module logs through a child of the ``pr_vigil`` logger. The host
configures it once at startup; output goes to stderr because stdout carries
the MCP stdio transport.
"""

import logging
import sys
from typing import TextIO

LOGGER_NAME = "pr_vigil"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(level: str | int = "INFO", stream: TextIO | None = None) -> None:
    """
    Attach a single handler to the package logger and set its level.

    Calling this again only changes the level.

    Args:
        level: Level name (case-insensitive) or number
        stream: Output stream, stderr by default
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = level.upper()

    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)

    logger.setLevel(level)


def get_logger(component: str) -> logging.Logger:
    """Return the logger for one component, e.g. ``get_logger("fetcher")``."""
    return logging.getLogger(f"{LOGGER_NAME}.{component}")
