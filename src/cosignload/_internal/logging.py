"""Logging for cosignload.

Worker threads log through child loggers of ``cosignload``. The thread
name is part of every line so interleaved output from concurrent sessions
stays attributable.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

ROOT_LOGGER = "cosignload"
HANDLER_NAME = "cosignload-stderr"

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(threadName)s %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, thread, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def _own_handler(logger: logging.Logger) -> logging.Handler | None:
    for handler in logger.handlers:
        if handler.get_name() == HANDLER_NAME:
            return handler
    return None


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``cosignload`` logger.

    A single named stderr handler is installed on first use. Later calls
    reuse it and only switch its level and format, so the runner and the
    CLI may both call this. Handlers installed by anyone else are left
    untouched.

    Args:
        level: Logging level. DEBUG prints one line per result record.
        json_format: Emit JSON lines instead of human-readable text.

    Returns:
        The configured ``cosignload`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    handler = _own_handler(logger)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(HANDLER_NAME)
        logger.addHandler(handler)

    handler.setLevel(level)
    handler.setFormatter(_make_formatter(json_format))

    # Reports go to stdout; log lines stay on our own stderr handler.
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger, e.g. ``get_logger("engine.session")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
