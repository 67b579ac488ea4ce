"""Logging setup for the APT history tailer.

Diagnostics go to stderr so that stdout stays reserved for JSON records.
Verbosity levels follow the command line's 0-5 scale:

    0 - None: only errors
    1 - Standard: normal progress messages
    2 - Progress: per-block progress messages
    3 - Data and above: debug output
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from pathlib import Path

LOGGER_NAME = "apthistory"

PROGRESS = 15
logging.addLevelName(PROGRESS, "PROGRESS")

_VERBOSITY_LEVELS = {
    0: logging.ERROR,
    1: logging.INFO,
    2: PROGRESS,
}

# Attributes every LogRecord carries; anything else was passed via extra=
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def verbosity_to_level(verbosity: int) -> int:
    return _VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)


class JsonLineFormatter(logging.Formatter):
    """Formats records as one JSON object per line, including extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            try:
                json.dumps(value)  # Ensure serializable
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(verbosity: int = 1, log_file: str | Path | None = None) -> logging.Logger:
    """Configure the package logger.

    Args:
        verbosity: 0-5 verbosity level from the command line.
        log_file: Optional path for a rotating JSON-lines diagnostic log.

    Returns:
        The configured package logger.
    """
    level = verbosity_to_level(verbosity)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler - human readable, on stderr
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger
