"""Parsing of APT history blocks into HistoryEvent records.

A block looks like:

    Start-Date: 2025-06-01  10:15:02
    Commandline: apt-get install -y curl
    Requested-By: alice (1000)
    Install: curl:amd64 (7.88.1-10+deb12u5), libcurl4:amd64 (7.88.1-10+deb12u5, automatic)
    End-Date: 2025-06-01  10:15:05
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import asdict
from datetime import datetime

from .models import HistoryEvent, PackageInfo

HISTORY_TIMESTAMP_FORMAT = "%Y-%m-%d  %H:%M:%S"


class ParseError(ValueError):
    """A history block could not be converted into a HistoryEvent."""


def parse_block(block: str) -> HistoryEvent:
    """Parse one framed history block.

    Args:
        block: Block text, one "Field: value" per line.

    Returns:
        The parsed event with derived fields (event id, elapsed time,
        operation flags and package total) filled in.

    Raises:
        ParseError: On a malformed line, unknown field, or invalid value.
    """
    event = HistoryEvent()

    for line in block.split("\n"):
        if not line:
            continue

        prefix, separator, value = line.partition(": ")
        if not separator:
            raise ParseError(f"unable to parse event field: unexpected value='{line}'")

        try:
            if prefix == "Start-Date":
                event.start_timestamp = parse_timestamp(value)
            elif prefix == "End-Date":
                event.end_timestamp = parse_timestamp(value)
            elif prefix == "Commandline":
                event.command_line = value
            elif prefix == "Requested-By":
                event.requested_by, event.requested_by_uid = parse_requester(value)
            elif prefix == "Error":
                event.error = value
            elif prefix == "Install":
                event.install = parse_packages(value)
            elif prefix == "Reinstall":
                event.reinstall = parse_packages(value)
            elif prefix == "Upgrade":
                event.upgrade = parse_packages(value)
            elif prefix == "Remove":
                event.remove = parse_packages(value)
            elif prefix == "Purge":
                event.purge = parse_packages(value)
            else:
                raise ParseError(f"unknown prefix '{prefix}' with value '{value}'")
        except ParseError as e:
            raise ParseError(f"failed to parse field '{prefix}': {e}") from e

    event.install_operation = bool(event.install)
    event.reinstall_operation = bool(event.reinstall)
    event.upgrade_operation = bool(event.upgrade)
    event.remove_operation = bool(event.remove)
    event.purge_operation = bool(event.purge)

    # Identify the event by its content, before derived fields are added
    event.event_id = generate_event_id(json.dumps(asdict(event), sort_keys=True).encode("utf-8"))

    event.elapsed_seconds = elapsed_seconds(event.start_timestamp, event.end_timestamp)
    event.total_packages = sum(len(packages) for packages in event.package_lists().values())

    return event


def parse_timestamp(raw: str) -> str:
    """Convert a history log timestamp (local time) to ISO 8601 with offset."""
    try:
        parsed = datetime.strptime(raw.strip(), HISTORY_TIMESTAMP_FORMAT)
    except ValueError as e:
        raise ParseError(f"failed parsing timestamp: {e}") from e
    return parsed.astimezone().isoformat(timespec="seconds")


def elapsed_seconds(start: str, end: str) -> int:
    try:
        start_time = datetime.fromisoformat(start)
    except ValueError as e:
        raise ParseError(f"failed to calculate elapsed time: invalid start time: {e}") from e
    try:
        end_time = datetime.fromisoformat(end)
    except ValueError as e:
        raise ParseError(f"failed to calculate elapsed time: invalid end time: {e}") from e
    return int((end_time - start_time).total_seconds())


def parse_requester(raw: str) -> tuple[str, int]:
    """Split "name (uid)" into the user name and numeric uid."""
    user_info = raw.split(" ")
    if not user_info[0]:
        raise ParseError("invalid length (length 0)")

    requester = user_info[0]
    uid = 0
    if len(user_info) == 2:
        uid_text = user_info[1].removeprefix("(").removesuffix(")")
        try:
            uid = int(uid_text)
        except ValueError as e:
            raise ParseError(f"failed to convert UID string '{uid_text}' to int") from e
    return requester, uid


def parse_packages(raw: str) -> list[PackageInfo]:
    """Parse a comma separated package list.

    Entries have the form "name:arch (version)", "name:arch (version, automatic)"
    or "name:arch (old_version, new_version)".
    """
    packages = []
    for entry in raw.split("), "):
        entry = entry.removesuffix(")")
        entry = entry.replace("(", "", 1)
        entry = entry.replace(",", "", 1)
        # Only the first colon separates name and architecture; epochs keep theirs
        entry = entry.replace(":", " ", 1)

        pkg_fields = entry.split()
        if len(pkg_fields) < 2:
            raise ParseError(f"could not identify name and architecture in '{entry}'")

        package = PackageInfo(name=pkg_fields[0], architecture=pkg_fields[1])
        if len(pkg_fields) == 4:
            if pkg_fields[3] == "automatic":
                package.version = pkg_fields[2]
            else:
                package.old_version = pkg_fields[2]
                package.version = pkg_fields[3]
        elif len(pkg_fields) == 3:
            package.version = pkg_fields[2]

        packages.append(package)
    return packages


def generate_event_id(data: bytes) -> str:
    """Build a UUID-formatted id from the first 16 bytes of a SHA-256 digest."""
    digest = hashlib.sha256(data).digest()
    return str(uuid.UUID(bytes=digest[:16]))
