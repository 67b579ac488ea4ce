"""Offline search over APT history logs.

Scans one or more history logs (plain or gzip compressed), parses every
block, keeps the events that match the search filters, and returns them as a
report sorted by start time.
"""

from __future__ import annotations

import glob
import gzip
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .models import OPERATIONS, HistoryEvent, PackageInfo
from .parsing import ParseError, parse_block
from .tailing.framer import frame_blocks

logger = logging.getLogger(__name__)

SEARCH_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

_OPERATION_CHECK = re.compile(rf"^({'|'.join(OPERATIONS)})(\|({'|'.join(OPERATIONS)}))*$")


@dataclass
class SearchOptions:
    """Search filters as given by the user; empty strings mean "no filter"."""

    event_id: str = ""
    output_order: str = "asc"
    start_timestamp: str = ""
    end_timestamp: str = ""
    package_name: str = ""
    package_version: str = ""
    operation: str = ""
    command_line: str = ""
    user_name: str = ""
    user_id: str = ""

    def compile(self, now: datetime | None = None) -> SearchParameters:
        """Validate the options and compile them into SearchParameters.

        Args:
            now: Reference time for the default window (defaults to the current time).

        Raises:
            ValueError: If a timestamp, regex, operation, or user id is invalid.
        """
        now = now or datetime.now().astimezone()

        if self.output_order not in ("asc", "desc"):
            raise ValueError(f"invalid time order '{self.output_order}': must be asc or desc")

        params = SearchParameters(
            event_id=self.event_id,
            start=_parse_search_time(self.start_timestamp, "start") if self.start_timestamp else now - timedelta(days=7),
            end=_parse_search_time(self.end_timestamp, "end") if self.end_timestamp else now,
            command_line=_compile(self.command_line, "command line text"),
            package_name=_compile(self.package_name, "package name"),
            package_version=_compile(self.package_version, "package version"),
            user_name=_compile(self.user_name, "user name"),
        )

        if self.operation:
            operation = self.operation.lower()
            if not _OPERATION_CHECK.match(operation):
                raise ValueError(
                    "invalid operation type: must be install, reinstall, upgrade, remove, "
                    "or purge (separated by '|' optionally)"
                )
            params.operations = frozenset(operation.split("|"))

        if self.user_id:
            try:
                params.user_id = int(self.user_id)
            except ValueError as e:
                raise ValueError(f"failed to compile user ID as number: {e}") from e

        return params


@dataclass
class SearchParameters:
    """Compiled search filters."""

    start: datetime
    end: datetime
    event_id: str = ""
    command_line: re.Pattern[str] | None = None
    package_name: re.Pattern[str] | None = None
    package_version: re.Pattern[str] | None = None
    user_name: re.Pattern[str] | None = None
    operations: frozenset[str] | None = None
    user_id: int | None = None


def _parse_search_time(value: str, label: str) -> datetime:
    try:
        return datetime.strptime(value, SEARCH_TIMESTAMP_FORMAT).astimezone()
    except ValueError as e:
        raise ValueError(f"failed parsing {label} time: {e}") from e


def _compile(pattern: str, label: str) -> re.Pattern[str] | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValueError(f"failed to compile {label} as regex: {e}") from e


def find_matches(event: HistoryEvent, params: SearchParameters) -> HistoryEvent | None:
    """Apply the search filters to one event.

    Returns:
        None when the event does not match. Otherwise the event, with its
        package lists narrowed to the operations and packages that matched.

    Raises:
        ValueError: If the event timestamps are not ISO 8601.
    """
    if params.event_id and params.event_id != event.event_id:
        return None

    try:
        start = datetime.fromisoformat(event.start_timestamp)
        end = datetime.fromisoformat(event.end_timestamp)
    except ValueError as e:
        raise ValueError(f"failed parsing event time: {e}") from e

    if start < params.start or end > params.end:
        return None
    if params.command_line and not params.command_line.search(event.command_line):
        return None
    if params.user_name and not params.user_name.search(event.requested_by):
        return None
    if params.user_id is not None and params.user_id != event.requested_by_uid:
        return None

    lists = event.package_lists()

    if params.operations is not None:
        lists = {op: pkgs if op in params.operations else [] for op, pkgs in lists.items()}
        if not any(lists.values()):
            return None

    if params.package_name or params.package_version:
        lists = {op: [pkg for pkg in pkgs if _package_matches(pkg, params)] for op, pkgs in lists.items()}
        if not any(lists.values()):
            return None

    return replace(
        event,
        **lists,
        **{f"{op}_operation": bool(pkgs) for op, pkgs in lists.items()},
    )


def _package_matches(package: PackageInfo, params: SearchParameters) -> bool:
    if params.package_name and not params.package_name.search(package.name):
        return False
    if params.package_version and not params.package_version.search(package.version):
        return False
    return True


def collect_search_files(input_path: str | Path) -> list[Path]:
    """Resolve the search input to a list of files.

    A regular file is returned as-is, a directory expands to the regular
    files inside it, and anything else is treated as a glob pattern.
    """
    path = Path(input_path)
    if path.is_file():
        return [path]
    if path.is_dir():
        return sorted(entry for entry in path.iterdir() if entry.is_file())
    return [Path(match) for match in sorted(glob.glob(str(input_path)))]


def _read_lines(path: Path) -> Iterator[str]:
    if path.suffix == ".gz":
        with gzip.open(path, "rt", encoding="utf-8", errors="replace") as f:
            yield from f
    else:
        with path.open("r", encoding="utf-8", errors="replace") as f:
            yield from f


def search_file(path: str | Path, params: SearchParameters) -> list[HistoryEvent]:
    """Return every matching event from one history log.

    Raises:
        ValueError: If the file cannot be read or contains a malformed block.
    """
    path = Path(path)
    matches = []
    try:
        for block in frame_blocks(_read_lines(path)):
            try:
                event = parse_block(block)
            except ParseError as e:
                raise ValueError(f"failed to parse log entry in {path}: {e}") from e

            matched = find_matches(event, params)
            if matched is not None:
                matches.append(matched)
    except (OSError, EOFError) as e:
        raise ValueError(f"failed to read log file {path}: {e}") from e

    logger.debug(f"Found {len(matches)} matching events in {path}")
    return matches


def sort_events(events: list[HistoryEvent], order: str = "asc") -> list[HistoryEvent]:
    """Sort events by start time, ascending or descending."""
    return sorted(events, key=_start_key, reverse=(order == "desc"))


def _start_key(event: HistoryEvent) -> tuple[int, Any]:
    try:
        return (0, datetime.fromisoformat(event.start_timestamp).timestamp())
    except ValueError:
        return (1, event.start_timestamp)


def run_search(input_path: str | Path, options: SearchOptions) -> dict[str, Any]:
    """Search input_path and build the report.

    Returns:
        {"totalresults": n, "results": [event dicts]}.

    Raises:
        ValueError: On invalid options or unreadable/malformed input.
    """
    params = options.compile()

    files = collect_search_files(input_path)
    if not files:
        logger.info(f"No log files found for {input_path}")

    results: list[HistoryEvent] = []
    for path in files:
        results.extend(search_file(path, params))

    ordered = sort_events(results, options.output_order)
    return {
        "totalresults": len(ordered),
        "results": [event.to_dict() for event in ordered],
    }
