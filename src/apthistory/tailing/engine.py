"""Continuous tailing of the APT history log.

The engine reads the history log from the last persisted position, frames
event blocks, parses and splits them, and writes the resulting records to the
output sink. It then waits for the change watcher to report new data or a
rotation. On a stop request it waits for the block being processed to finish
and persists the position of the last fully emitted block.

The offset only ever moves to the end of a complete block, so a restart never
resumes in the middle of one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from typing import BinaryIO

from ..config import TailerConfig
from ..logging_manager import PROGRESS
from ..models import HistoryEvent
from ..parsing import ParseError, parse_block
from .errors import TailerError
from .framer import BlockFramer
from .position_store import Position, PositionStore, current_identity
from .sink import OutputSink
from .splitter import split_record
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class EngineState(Enum):
    """Lifecycle states of the tailing engine."""

    OPENING = "opening"
    SCANNING = "scanning"
    WAITING = "waiting"
    ROTATING = "rotating"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class TailingEngine:
    """Tails the history log and emits one JSON line per (split) record.

    Attributes:
        config: Tailer configuration.
        store: Persistent position store.
        sink: Destination for emitted records.
        watcher: Source of change and rotation signals.
        position: Position of the last fully processed block.
        state: Current lifecycle state.
    """

    def __init__(
        self,
        config: TailerConfig,
        store: PositionStore,
        sink: OutputSink,
        watcher: ChangeWatcher | None = None,
        parser: Callable[[str], HistoryEvent] = parse_block,
        handle_signals: bool = True,
    ):
        self.config = config
        self.store = store
        self.sink = sink
        self.watcher = watcher or ChangeWatcher(config.log_path, config.rotation_poll_interval)
        self.parser = parser
        self.handle_signals = handle_signals

        self.framer = BlockFramer()
        self.position: Position | None = None
        self.state = EngineState.OPENING

        self._file: BinaryIO | None = None
        self._saved_position: Position | None = None
        self._blocks_since_checkpoint = 0

        # Cancellation token, observed by the tail loop at block boundaries
        self._stop_requested = asyncio.Event()
        # Set whenever no block is being processed; shutdown waits on it
        self._between_blocks = asyncio.Event()
        self._between_blocks.set()

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def request_stop(self) -> None:
        """Ask the engine to shut down after the current block."""
        self._stop_requested.set()

    async def run(self) -> None:
        """Run until a stop is requested or a fatal error occurs.

        Raises:
            TailerError: If the log, state, or change notifications cannot be set up.
            OSError: If the log file becomes unreadable while tailing.
        """
        loop = asyncio.get_running_loop()
        tasks: list[asyncio.Task] = []
        try:
            self._open()
            self.watcher.start()

            if self.config.dry_run:
                logger.info("Dry-run requested, not processing log file. Exiting...")
                return

            if self.handle_signals:
                for sig in STOP_SIGNALS:
                    loop.add_signal_handler(sig, self._on_signal, sig)

            logger.info(f"Starting log file watch on {self.config.log_path}")
            tail_task = asyncio.create_task(self._tail_loop(), name="tail-loop")
            watch_task = asyncio.create_task(self.watcher.run(), name="change-watcher")
            stop_task = asyncio.create_task(self._stop_requested.wait(), name="stop-waiter")
            tasks = [tail_task, watch_task, stop_task]

            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            for task in (watch_task, tail_task):
                if task in done and task.exception() is not None:
                    raise task.exception()

            await self._shutdown(tail_task)
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if self.handle_signals:
                for sig in STOP_SIGNALS:
                    loop.remove_signal_handler(sig)
            self.watcher.close()
            self._close_file()
            self.state = EngineState.TERMINATED

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal: {sig.name}")
        self.request_stop()

    async def _shutdown(self, tail_task: asyncio.Task) -> None:
        self.state = EngineState.SHUTTING_DOWN

        # Never persist an offset while a block is half written
        await self._between_blocks.wait()
        tail_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await tail_task

        assert self.position is not None
        logger.debug(
            f"Saving current log file inode ({self.position.file_identity}) "
            f"and position ({self.position.offset})"
        )
        self.store.save(self.position)
        self._saved_position = self.position
        logger.info("Shutting down")

    # ============================================================================
    # File handling
    # ============================================================================

    def _open(self) -> None:
        self.state = EngineState.OPENING
        # Refuse to emit anything whose position could not be persisted
        self.store.verify()
        self.position = self.store.load(self.config.log_path)
        self._open_file(self.position.offset)
        logger.info(
            f"Resuming {self.config.log_path} (inode {self.position.file_identity}) "
            f"at offset {self.position.offset}"
        )

    def _open_file(self, offset: int) -> None:
        try:
            self._file = open(self.config.log_path, "rb")
            self._file.seek(offset, os.SEEK_SET)
        except OSError as e:
            self._close_file()
            raise TailerError(f"Failed to read log file {self.config.log_path}: {e}") from e

    def _close_file(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _reopen_after_rotation(self) -> None:
        self.state = EngineState.ROTATING
        assert self.position is not None

        identity = current_identity(self.config.log_path)
        size = os.stat(self.config.log_path).st_size
        if identity == self.position.file_identity and size >= self.position.offset:
            # Several directory events can be reported for one rotation
            logger.debug(f"Log file {self.config.log_path} is unchanged (inode {identity}), keeping offset")
            return

        logger.info(f"Reopening rotated log file {self.config.log_path} (inode {identity})")
        self._close_file()
        self.framer.reset()
        self.position = Position(file_identity=identity, offset=0)
        self._open_file(0)
        self._checkpoint()

    # ============================================================================
    # Tail loop
    # ============================================================================

    async def _tail_loop(self) -> None:
        while not self._stop_requested.is_set():
            await self._scan()
            if self._stop_requested.is_set():
                break

            self._checkpoint()
            self.state = EngineState.WAITING
            logger.log(PROGRESS, "No more new lines, waiting for file changes")

            await self.watcher.changed.get()
            if not self.watcher.rotated.empty():
                self.watcher.rotated.get_nowait()
                # Drain whatever was appended to the old file before switching
                await self._scan()
                if self._stop_requested.is_set():
                    # Shutdown saves the old file's position; resume there
                    break
                self._reopen_after_rotation()

    async def _scan(self) -> None:
        """Process every complete line currently available."""
        self.state = EngineState.SCANNING
        assert self._file is not None

        while not self._stop_requested.is_set():
            line_start = self._file.tell()
            raw = self._file.readline()
            if not raw:
                break
            if not raw.endswith(b"\n"):
                # The writer has not finished this line yet
                self._file.seek(line_start, os.SEEK_SET)
                break

            block = self.framer.feed(raw.rstrip(b"\r\n").decode("utf-8", errors="replace"))
            if block is None:
                continue

            self._between_blocks.clear()
            try:
                self._emit_block(block)
                assert self.position is not None
                self.position = replace(self.position, offset=self._file.tell())
            finally:
                self._between_blocks.set()

            self._blocks_since_checkpoint += 1
            if self._blocks_since_checkpoint >= self.config.checkpoint_interval:
                self._checkpoint()

            # Block boundary: let a pending stop request through
            await asyncio.sleep(0)

    def _emit_block(self, block: str) -> None:
        logger.log(PROGRESS, "Parsing event fields")
        try:
            event = self.parser(block)
        except ParseError as e:
            flattened = block.replace("\n", ":")
            logger.warning(f"Failed to parse log entry: {e}: ({flattened})")
            return

        try:
            lines = [chunk.to_json() for chunk in split_record(event, self.config.max_entry_size)]
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid JSON: {e}: ({event})")
            return

        if len(lines) > 1:
            logger.debug(f"Split event {event.event_id} into {len(lines)} records")
        for line in lines:
            self.sink.write(line)

    def _checkpoint(self) -> None:
        """Persist the position if it changed; failures are not fatal here."""
        self._blocks_since_checkpoint = 0
        if self.position is None or self.position == self._saved_position:
            return
        try:
            self.store.save(self.position)
        except TailerError as e:
            logger.warning(f"Failed to checkpoint log position: {e}")
            return
        self._saved_position = self.position
