"""Logging setup for the csinet command line.

The library only creates loggers; handlers are attached here, by the
CLI, and never at import time.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "csinet"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(*, level: str = "WARNING", quiet: bool = False, log_file: str | None = None):
    """Configure the package logger and return it.

    Args:
        level: Level name for the logger and its handlers.
        quiet: Attach no stderr handler.
        log_file: Also log to this file, rotated at 5 MB.
    """
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(level.upper())
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()

    fmt = logging.Formatter(LOG_FORMAT)

    if not quiet:
        h = logging.StreamHandler(stream=sys.stderr)
        h.setLevel(level.upper())
        h.setFormatter(fmt)
        log.addHandler(h)

    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setLevel(level.upper())
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log
