from __future__ import annotations

import fnmatch
import logging
import os
import sys

DEBUG_ENV_VAR = "SAFEFLOW_DEBUG"


class _TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        import json

        payload = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """Configure and return the root safeflow logger.

    Calling this more than once is a no-op apart from returning the
    logger. Child loggers matching a pattern in ``SAFEFLOW_DEBUG``
    (comma separated, ``fnmatch`` style on the part after ``safeflow.``,
    e.g. ``outputs.*``) are switched to DEBUG.
    """
    logger = logging.getLogger("safeflow")

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter() if json_output else _TextFormatter())
    logger.addHandler(handler)

    for pattern in debug_patterns():
        enable_debug(pattern)

    return logger


def debug_patterns(value: str | None = None) -> list[str]:
    """Parse the comma separated debug namespace list."""
    raw = os.environ.get(DEBUG_ENV_VAR, "") if value is None else value
    return [p.strip() for p in raw.split(",") if p.strip()]


def enable_debug(pattern: str) -> list[str]:
    """Set DEBUG on every known safeflow child logger matching *pattern*.

    Returns the names of the loggers that were switched.
    """
    if pattern in ("*", "all"):
        logging.getLogger("safeflow").setLevel(logging.DEBUG)
        return ["safeflow"]

    switched: list[str] = []
    for name in list(logging.root.manager.loggerDict):
        if not name.startswith("safeflow."):
            continue
        if fnmatch.fnmatch(name[len("safeflow."):], pattern):
            logging.getLogger(name).setLevel(logging.DEBUG)
            switched.append(name)
    return switched


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the safeflow namespace."""
    return logging.getLogger(f"safeflow.{name}")
