"""Configuration for the APT history tailer.

This module defines the configuration dataclass that controls tailing and
search behavior, including file locations, the output size bound, and
verbosity. Values can be loaded from a YAML file and overridden from the
command line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Stay well below the journald maximum log entry size
DEFAULT_MAX_ENTRY_SIZE = 16 * 999

MAX_VERBOSITY = 5


@dataclass
class TailerConfig:
    """Configuration for the tailing engine and search mode.

    Attributes:
        log_path: APT history log to watch or search (default: /var/log/apt/history.log).
        output_path: File to append JSON records to; None writes to stdout.
        state_dir: Directory holding the persisted read position.
        state_file_name: Name of the position file inside state_dir.
        max_entry_size: Largest serialized record (bytes) before it is split.
        checkpoint_interval: Blocks processed between best-effort position saves.
        rotation_poll_interval: Seconds between checks for a rotated file to reappear.
        verbosity: 0 (errors only) to 5 (debug).
        dry_run: Perform all startup steps but do not process the log.
        log_file: Optional file for the application's own diagnostic log.
    """

    log_path: str = "/var/log/apt/history.log"
    output_path: str | None = None
    state_dir: str = "/var/lib/APTHistoryLogger"
    state_file_name: str = "log.state"
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE
    checkpoint_interval: int = 50
    rotation_poll_interval: float = 0.1
    verbosity: int = 1
    dry_run: bool = False
    log_file: str | None = None

    def validate(self) -> TailerConfig:
        """Check value ranges.

        Returns:
            self, to allow chaining.

        Raises:
            ValueError: If any value is out of range.
        """
        if not 0 <= self.verbosity <= MAX_VERBOSITY:
            raise ValueError(f"verbosity must be between 0 and {MAX_VERBOSITY}, got {self.verbosity}")
        if self.max_entry_size <= 0:
            raise ValueError(f"max_entry_size must be positive, got {self.max_entry_size}")
        if self.checkpoint_interval <= 0:
            raise ValueError(f"checkpoint_interval must be positive, got {self.checkpoint_interval}")
        if self.rotation_poll_interval <= 0:
            raise ValueError(
                f"rotation_poll_interval must be positive, got {self.rotation_poll_interval}"
            )
        if not self.log_path:
            raise ValueError("log_path must not be empty")
        return self

    @property
    def state_file(self) -> Path:
        return Path(self.state_dir) / self.state_file_name

    def with_overrides(self, **values: Any) -> TailerConfig:
        """Return a copy with every non-None value applied."""
        changes = {key: value for key, value in values.items() if value is not None}
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TailerConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data).validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> TailerConfig:
        """Load configuration from a YAML mapping.

        Args:
            path: YAML file to read.

        Returns:
            Validated configuration.

        Raises:
            ValueError: If the file cannot be read, is not a mapping, or holds
                unknown keys or invalid values.
        """
        config_path = Path(path)
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ValueError(f"Failed to read configuration file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse configuration YAML {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")

        logger.debug(f"Loaded configuration from {config_path}")
        return cls.from_dict(data)
