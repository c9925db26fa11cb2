"""The ``acpsession`` logger.

Every module logs through a child of the ``acpsession`` logger
(``get_logger("tools")`` -> ``acpsession.tools``). ``setup_logging`` picks
the level and the destination once per process:

- ``logging.verbose`` (0-4) or ``logging.level`` from config
- ``logging.file`` from config, else the ``ACPS_LOG`` environment variable
- stderr when neither names a file and stderr is a terminal

Two levels sit next to the standard ones: VERBOSE for each applied session
update and TRACE for raw JSON-RPC lines.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from acpsession.config import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("acpsession")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# -v count; anything above 4 is TRACE
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def _resolve_level(config: LoggingConfig | None) -> int:
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY_MAP.get(config.verbose, TRACE)
    if config.level:
        return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Attach handlers to the ``acpsession`` logger. Only the first call counts.

    ``verbose`` wins over ``level`` when both are set. An unreadable log file
    path falls back to stderr on a terminal and to no output otherwise.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = _resolve_level(config)
    logger.setLevel(level)
    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = config.file if config and config.file else os.environ.get("ACPS_LOG")
    if log_path:
        try:
            handler: logging.Handler = logging.FileHandler(
                os.path.expanduser(log_path), mode="a", encoding="utf-8"
            )
        except OSError as e:
            if not sys.stderr.isatty():
                return
            print(f"[acpsession] Cannot open log file {log_path}: {e}", file=sys.stderr)
            handler = logging.StreamHandler(sys.stderr)
    elif sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)
    else:
        # piped stderr without a log file: stay quiet
        return

    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """``acpsession.<name>``, or the package logger itself when no name is given."""
    if name:
        return logger.getChild(name)
    return logger
