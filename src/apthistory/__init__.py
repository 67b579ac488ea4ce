"""APT history log tailer.

Watches the APT history log, parses each operation block into a JSON record,
and emits the records as they appear, surviving restarts and log rotation.
A search mode scans existing (optionally gzip compressed) logs.
"""

from __future__ import annotations

from .config import TailerConfig
from .models import HistoryEvent, PackageInfo
from .parsing import ParseError, parse_block

__all__ = [
    "HistoryEvent",
    "PackageInfo",
    "ParseError",
    "TailerConfig",
    "parse_block",
]

__version__ = "1.0.0"
