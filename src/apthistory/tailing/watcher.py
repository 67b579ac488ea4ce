"""Change and rotation notifications for the history log.

This module watches the log file for new data and its parent directory for
the log file being created, deleted, or renamed. It runs as a task on the
engine's event loop and reports through two single-slot queues:

    changed: new bytes may be available in the current file
    rotated: the file at the log path was replaced by a different file

Signals are coalesced: if a signal is already pending, another one of the
same kind is dropped, since the engine drains everything available on wake.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from inotify_simple import INotify, flags

from .errors import WatcherError

logger = logging.getLogger(__name__)

FILE_MASK = flags.MODIFY | flags.CLOSE_WRITE
DIR_MASK = flags.CREATE | flags.DELETE | flags.MOVED_FROM | flags.MOVED_TO


class ChangeWatcher:
    """Watches a log file and its directory through inotify.

    Attributes:
        log_path: Path of the watched log file.
        rotation_poll_interval: Seconds between checks for a rotated file
            to reappear at log_path.
        changed: Queue receiving a signal when the file is written to.
        rotated: Queue receiving a signal when the file was replaced.
    """

    def __init__(self, log_path: str | Path, rotation_poll_interval: float = 0.1):
        self.log_path = Path(log_path)
        self.rotation_poll_interval = rotation_poll_interval
        self.changed: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self.rotated: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

        self._inotify: INotify | None = None
        self._file_wd: int | None = None
        self._file_identity: int | None = None
        self._dir_wd: int | None = None

    @property
    def started(self) -> bool:
        return self._inotify is not None

    @property
    def watched_identity(self) -> int | None:
        """Inode of the file currently under the file watch."""
        return self._file_identity

    def start(self) -> None:
        """Create the inotify instance and install the file and directory watches.

        Raises:
            WatcherError: If inotify cannot be initialized or a watch cannot be added.
        """
        if self.started:
            return

        logger.debug("Setting up inotify to watch for log file and directory changes")
        try:
            self._inotify = INotify()
            self._watch_file()
            self._dir_wd = self._inotify.add_watch(self.log_path.parent, DIR_MASK)
        except OSError as e:
            self.close()
            raise WatcherError(f"Failed to add inotify watch for {self.log_path}: {e}") from e

    async def run(self) -> None:
        """Read inotify events until cancelled.

        Errors reading the event stream propagate to the caller. All watches
        are released when this coroutine exits, whatever the reason.
        """
        self.start()
        assert self._inotify is not None

        loop = asyncio.get_running_loop()
        readable = asyncio.Event()
        fd = self._inotify.fileno()
        loop.add_reader(fd, readable.set)
        try:
            while True:
                await readable.wait()
                readable.clear()
                await self._handle_events(self._inotify.read(timeout=0))
        finally:
            loop.remove_reader(fd)
            self.close()

    async def _handle_events(self, events: list) -> None:
        file_name = self.log_path.name
        for event in events:
            if event.mask & flags.Q_OVERFLOW:
                await self._handle_overflow(event.mask)
                continue

            if event.wd == self._file_wd and event.mask & FILE_MASK:
                logger.debug(f"File modified: {self.log_path}")
                self._signal(self.changed)
            elif event.wd == self._dir_wd and event.name == file_name and event.mask & DIR_MASK:
                await self._handle_rotation(event.mask)

    async def _handle_overflow(self, mask: int) -> None:
        # Dropped events may have included a rotation of the log file
        try:
            identity = os.stat(self.log_path).st_ino
        except FileNotFoundError:
            identity = None

        if identity != self._file_identity:
            logger.warning("inotify event queue overflowed and the log file was replaced")
            await self._handle_rotation(mask)
        else:
            logger.warning("inotify event queue overflowed, rescanning log file")
            self._signal(self.changed)

    async def _handle_rotation(self, mask: int) -> None:
        names = ", ".join(flag.name for flag in flags.from_mask(mask))
        logger.info(f"Log file rotated: {self.log_path} ({names})")

        while not os.path.exists(self.log_path):
            await asyncio.sleep(self.rotation_poll_interval)

        assert self._inotify is not None
        if self._file_wd is not None:
            try:
                self._inotify.rm_watch(self._file_wd)
            except OSError:
                # The kernel drops the watch itself once the old file is deleted
                logger.debug(f"Watch descriptor {self._file_wd} was already removed")
            self._file_wd = None
            self._file_identity = None

        try:
            self._watch_file()
        except OSError as e:
            raise WatcherError(f"Failed to add rotated log file {self.log_path} to inotify watcher: {e}") from e

        self._signal(self.rotated)
        self._signal(self.changed)

    def _watch_file(self) -> None:
        assert self._inotify is not None
        self._file_wd = self._inotify.add_watch(self.log_path, FILE_MASK)
        self._file_identity = os.stat(self.log_path).st_ino

    def _signal(self, queue: asyncio.Queue[None]) -> None:
        try:
            queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def close(self) -> None:
        """Release every watch and the inotify instance."""
        if self._inotify is None:
            return

        for name, wd in (("file", self._file_wd), ("dir", self._dir_wd)):
            if wd is None:
                continue
            logger.debug(f"Cleaning up inotify {name} descriptor {wd}")
            try:
                self._inotify.rm_watch(wd)
            except OSError:
                logger.debug(f"inotify {name} descriptor {wd} was already removed")

        self._inotify.close()
        self._inotify = None
        self._file_wd = None
        self._file_identity = None
        self._dir_wd = None
