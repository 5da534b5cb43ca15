"""
Logging configuration — one call at process start.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where records go and how they look.

Console level precedence:
    --debug / --verbose / --quiet  >  FORMULA_LOG_LEVEL  >  WARNING

A full-detail file log is added when FORMULA_LOG_FILE is set
(its level comes from FORMULA_LOG_FILE_LEVEL, else the console level).
"""

from __future__ import annotations

import logging
import sys

ENV_LOG_LEVEL = "FORMULA_LOG_LEVEL"
ENV_LOG_FILE = "FORMULA_LOG_FILE"
ENV_LOG_FILE_LEVEL = "FORMULA_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

_FORMATS = {
    # WARNING and above: the message is the whole story
    "minimal": ("%(levelname)s: %(message)s", None),
    # INFO: phase-by-phase progress
    "verbose": ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    # DEBUG: where each record came from
    "debug": ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
}

_FILE_FORMAT = (
    "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s",
    "%Y-%m-%d %H:%M:%S",
)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of a log file to append to.
        log_file_level: Level for the log file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        fmt, datefmt = _FORMATS["debug"]
    elif console_level <= logging.INFO:
        fmt, datefmt = _FORMATS["verbose"]
    else:
        fmt, datefmt = _FORMATS["minimal"]

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
        root.addHandler(handler)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to numeric constant; unknown names fall back to WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
