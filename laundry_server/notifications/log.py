"""Logging setup shared by the notification service."""
import logging
import sys
from typing import Optional

from .config import LOG_LEVEL

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once."""
    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the requested module."""
    configure_logging()
    return logging.getLogger(name)
