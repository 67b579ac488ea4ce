"""Shared fixtures for apthistory tests."""

import logging
from pathlib import Path

import pytest

from apthistory.logging_manager import LOGGER_NAME
from history_samples import INSTALL_BLOCK, UPGRADE_BLOCK


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so later tests see default logger behavior."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Create temporary state directory for tests."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def history_log(tmp_path: Path) -> Path:
    """Create a history log holding two complete blocks."""
    log_dir = tmp_path / "apt"
    log_dir.mkdir()
    log_file = log_dir / "history.log"
    log_file.write_text("\n" + INSTALL_BLOCK + "\n" + UPGRADE_BLOCK)
    return log_file
