"""Output sink for emitted JSON records."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)


class OutputSink:
    """Writes one JSON record per line to stdout or an append-only file.

    Use as a context manager; the file (if any) is opened on enter and
    closed on exit. Every line is flushed as soon as it is written.
    """

    def __init__(self, path: str | Path | None = None, stream: TextIO | None = None):
        self.path = Path(path) if path else None
        self._stream = stream
        self._file: TextIO | None = None

    def __enter__(self) -> OutputSink:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        if self.path is not None and self._file is None:
            self._file = self.path.open("a", encoding="utf-8")
            logger.debug(f"Appending records to {self.path}")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def stream(self) -> TextIO:
        if self._file is not None:
            return self._file
        if self.path is not None:
            raise RuntimeError(f"Output file {self.path} is not open")
        return self._stream or sys.stdout

    def write(self, line: str) -> None:
        stream = self.stream
        stream.write(line + "\n")
        stream.flush()
