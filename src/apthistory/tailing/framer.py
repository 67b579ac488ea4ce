"""Multi-line block framing for the APT history log.

Each operation in history.log is a block of "Field: value" lines that begins
with a "Start-Date: " line and ends with an "End-Date: " line. The framer
accumulates lines between those markers and hands back complete blocks.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

START_MARKER = "Start-Date: "
END_MARKER = "End-Date: "


class BlockFramer:
    """Stateful line consumer that yields complete event blocks.

    A partially received block is kept across calls so that bytes arriving
    later can complete it. Callers that track file offsets must only record
    an offset when feed() returns a block.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._open = False

    @property
    def has_open_block(self) -> bool:
        return self._open

    def feed(self, line: str) -> str | None:
        """Consume one line (without its line separator).

        Returns:
            The complete block text, each line followed by a newline, when
            line closes an open block; otherwise None.
        """
        if line.startswith(START_MARKER):
            # A new start marker always wins over an unterminated block
            self._lines = []
            self._open = True

        if not self._open:
            return None

        self._lines.append(line + "\n")

        if line.startswith(END_MARKER):
            block = "".join(self._lines)
            self.reset()
            return block

        return None

    def reset(self) -> None:
        """Discard any partially accumulated block."""
        self._lines = []
        self._open = False


def frame_blocks(lines: Iterable[str]) -> Iterator[str]:
    """Yield every complete block found in lines.

    Trailing line separators are stripped before framing. An unterminated
    block at the end of the input is not yielded.
    """
    framer = BlockFramer()
    for line in lines:
        block = framer.feed(line.rstrip("\r\n"))
        if block is not None:
            yield block
