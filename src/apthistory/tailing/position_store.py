"""Position tracking for crash-safe resumption.

This module persists the (file identity, byte offset) pair of the history log
to a single-slot state file so the tailing engine can resume where it left
off after a restart. The file identity is the inode number, which lets a
restart detect that the log was rotated while the process was stopped.
"""

from __future__ import annotations

import fcntl
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import PositionStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    """Read position within the history log.

    Attributes:
        file_identity: Inode number of the file the offset belongs to.
        offset: Bytes of the file that have been fully processed.
    """

    file_identity: int
    offset: int = 0


def current_identity(log_path: str | Path) -> int:
    """Return the identity (inode number) of the file at log_path.

    Raises:
        PositionStoreError: If the file cannot be stat'ed.
    """
    try:
        return os.stat(log_path).st_ino
    except OSError as e:
        raise PositionStoreError(f"Unable to stat log file {log_path}: {e}") from e


class PositionStore:
    """Manages the persisted read position of the history log.

    The state file always holds exactly one record, "<inode> <offset>".
    Missing, empty, or malformed content is treated as "no prior state".

    Attributes:
        state_dir: Directory containing the state file.
        state_file: Path to the state file.
    """

    def __init__(self, state_dir: str | Path = "/var/lib/APTHistoryLogger", file_name: str = "log.state"):
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / file_name

    def load(self, log_path: str | Path) -> Position:
        """Resolve the position to resume reading log_path from.

        Args:
            log_path: History log the position applies to.

        Returns:
            The stored position when it still applies to the current file
            (offset clamped to the file size), otherwise offset 0 with the
            current file's identity.

        Raises:
            PositionStoreError: If the log file cannot be stat'ed or the state
                file exists but cannot be read.
        """
        try:
            stat = os.stat(log_path)
        except OSError as e:
            raise PositionStoreError(f"Unable to stat log file {log_path}: {e}") from e

        fresh = Position(file_identity=stat.st_ino, offset=0)

        content = self._read_state()
        if not content:
            logger.info("No saved position found, starting from beginning of log file")
            return fresh

        parts = content.split()
        if len(parts) != 2:
            logger.info(
                "Too little/too much data found in state file, "
                "resetting and continuing from beginning of log file"
            )
            self.reset()
            return fresh

        try:
            stored_identity = int(parts[0])
            stored_offset = int(parts[1])
        except ValueError:
            stored_identity = stored_offset = -1
        if stored_identity < 0 or stored_offset < 0:
            logger.info("Invalid data found in state file, resetting and continuing from beginning of log file")
            self.reset()
            return fresh

        if stored_identity != stat.st_ino:
            logger.info(
                f"Log file identity changed ({stored_identity} -> {stat.st_ino}), "
                "starting from beginning of new log file"
            )
            return fresh

        if stored_offset > stat.st_size:
            logger.info(
                f"Cached offset ({stored_offset}) is beyond file size ({stat.st_size}), "
                "resetting to end of file"
            )
            stored_offset = stat.st_size

        return Position(file_identity=stored_identity, offset=stored_offset)

    def _read_state(self) -> str:
        """Read the raw state file content with a shared lock.

        Returns:
            Stripped content, or an empty string if there is no state file.
        """
        try:
            with self.state_file.open("r", encoding="utf-8", errors="replace") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    return f.read(128).strip()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise PositionStoreError(f"Unable to read state file {self.state_file}: {e}") from e

    def verify(self) -> None:
        """Make sure the state directory exists and accepts writes.

        Creates state_dir if needed and writes then removes the temporary
        sibling that save() uses. No position is stored.

        Raises:
            PositionStoreError: If the directory cannot be created or written to.
        """
        temp_file = self.state_file.with_suffix(".tmp")
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with temp_file.open("w", encoding="utf-8"):
                pass
            temp_file.unlink()
        except OSError as e:
            raise PositionStoreError(f"State directory {self.state_dir} is not writable: {e}") from e

    def save(self, position: Position) -> None:
        """Persist position, replacing any previous value.

        Writes to a temporary file under an exclusive lock and then
        atomically renames it over the state file.

        Raises:
            PositionStoreError: If the directory cannot be created or the
                file cannot be written.
        """
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            temp_file = self.state_file.with_suffix(".tmp")
            with temp_file.open("w", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.write(f"{position.file_identity} {position.offset}")
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            temp_file.replace(self.state_file)
        except OSError as e:
            raise PositionStoreError(
                f"Failed to write current log position to {self.state_file}: {e}"
            ) from e

        logger.debug(f"Saved log file inode ({position.file_identity}) and position ({position.offset})")

    def reset(self) -> None:
        """Remove any stored position by truncating the state file."""
        try:
            with self.state_file.open("w", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            # Malformed state is discarded either way; the next save overwrites it
            logger.warning(f"Failed to truncate state file {self.state_file}: {e}")
