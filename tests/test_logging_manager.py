"""Tests for logging setup."""

import json
import logging
import logging.handlers
from pathlib import Path

import pytest

from apthistory.logging_manager import PROGRESS, JsonLineFormatter, setup_logging, verbosity_to_level


class TestVerbosity:
    @pytest.mark.parametrize(
        "verbosity,level",
        [(0, logging.ERROR), (1, logging.INFO), (2, PROGRESS), (3, logging.DEBUG), (5, logging.DEBUG)],
    )
    def test_verbosity_to_level(self, verbosity: int, level: int) -> None:
        assert verbosity_to_level(verbosity) == level

    def test_progress_level_name(self) -> None:
        assert logging.getLevelName(PROGRESS) == "PROGRESS"


class TestSetupLogging:
    """Tests for handler configuration."""

    def test_console_only(self) -> None:
        logger = setup_logging(verbosity=2)

        assert logger.level == PROGRESS
        assert not logger.propagate
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_repeated_setup_replaces_handlers(self) -> None:
        setup_logging(verbosity=1)
        logger = setup_logging(verbosity=0)

        assert len(logger.handlers) == 1
        assert logger.level == logging.ERROR

    def test_file_handler_writes_json_lines(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "apthistory.log"
        logger = setup_logging(verbosity=3, log_file=log_file)

        rotating = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 10 * 1024 * 1024
        assert rotating[0].backupCount == 5

        logging.getLogger("apthistory.tailing.engine").info("Reopening rotated log file", extra={"inode": 42})
        rotating[0].flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["level"] == "INFO"
        assert entry["logger"] == "apthistory.tailing.engine"
        assert entry["message"] == "Reopening rotated log file"
        assert entry["inode"] == 42


class TestJsonLineFormatter:
    def test_unserializable_extra_is_stringified(self) -> None:
        record = logging.LogRecord("apthistory", logging.WARNING, __file__, 1, "msg", None, None)
        record.path = Path("/var/log/apt/history.log")

        entry = json.loads(JsonLineFormatter().format(record))

        assert entry["path"] == "/var/log/apt/history.log"
        assert entry["message"] == "msg"
