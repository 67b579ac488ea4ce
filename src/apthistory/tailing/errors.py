"""Exceptions raised by the tailing engine and its components."""

from __future__ import annotations


class TailerError(RuntimeError):
    """Fatal condition that stops the tailing engine."""


class PositionStoreError(TailerError):
    """The persisted read position could not be loaded or saved."""


class WatcherError(TailerError):
    """Change notifications could not be set up."""
