from __future__ import annotations

import logging
from enum import Enum

from .config import settings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"


class VerbosityLevel(Enum):
    """How chatty a single fetch and its connection should be."""

    OFF = "off"
    ERRORS = "errors"
    INFO = "info"
    VERBOSE = "verbose"

    @property
    def logging_level(self) -> int:
        return _LEVELS[self]


_LEVELS = {
    VerbosityLevel.OFF: logging.CRITICAL + 10,
    VerbosityLevel.ERRORS: logging.ERROR,
    VerbosityLevel.INFO: logging.INFO,
    VerbosityLevel.VERBOSE: logging.DEBUG,
}


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    level = logging.getLevelName(settings.log_level)
    logger.setLevel(level if isinstance(level, int) else logging.WARNING)
    return logger


def verbosity_logger(name: str, verbosity: VerbosityLevel) -> logging.Logger:
    """Child logger of `name` whose level follows a per-instance verbosity."""
    parent = get_logger(name)
    child = parent.getChild(verbosity.value)
    child.setLevel(verbosity.logging_level)
    return child


def mask_key(url: str, secret: str | None) -> str:
    if not secret:
        return url
    return url.replace(secret, "***")
