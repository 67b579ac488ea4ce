"""Continuous tailing and crash-safe resumption of the APT history log.

Key Components:
    - position_store: Persistent (inode, offset) state with file locking
    - watcher: inotify based change and rotation notifications
    - framer: Start-Date/End-Date block framing
    - splitter: Size-bounded record splitting
    - sink: JSON line output to stdout or a file
    - engine: State machine tying the components together

Example:
    >>> from apthistory.config import TailerConfig
    >>> from apthistory.tailing import OutputSink, PositionStore, TailingEngine
    >>> config = TailerConfig(log_path="/var/log/apt/history.log")
    >>> store = PositionStore(config.state_dir, config.state_file_name)
    >>> with OutputSink(config.output_path) as sink:
    ...     asyncio.run(TailingEngine(config, store, sink).run())
"""

from __future__ import annotations

from .engine import EngineState, TailingEngine
from .errors import PositionStoreError, TailerError, WatcherError
from .framer import BlockFramer, frame_blocks
from .position_store import Position, PositionStore, current_identity
from .sink import OutputSink
from .splitter import serialized_size, split_record
from .watcher import ChangeWatcher

__all__ = [
    "BlockFramer",
    "ChangeWatcher",
    "EngineState",
    "OutputSink",
    "Position",
    "PositionStore",
    "PositionStoreError",
    "TailerError",
    "TailingEngine",
    "WatcherError",
    "current_identity",
    "frame_blocks",
    "serialized_size",
    "split_record",
]
