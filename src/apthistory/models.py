"""Data models for APT history events.

This module defines the structured record produced from one history log
block, its JSON wire representation, and the explicit accessors for the
package list attributes that the record splitter may subdivide.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from operator import attrgetter
from typing import Any, NamedTuple


@dataclass
class PackageInfo:
    """One package entry from an operation list.

    Attributes:
        name: Package name.
        architecture: Package architecture (e.g. "amd64").
        version: Version after the operation.
        old_version: Version before the operation (upgrades only).
    """

    name: str
    architecture: str
    version: str = ""
    old_version: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"package": self.name, "architecture": self.architecture}
        if self.old_version:
            data["oldversion"] = self.old_version
        data["version"] = self.version
        return data


@dataclass
class HistoryEvent:
    """Structured form of one APT history block.

    Attributes:
        event_id: Deterministic UUID-formatted identifier of the event.
        command_line: Command that triggered the operation.
        start_timestamp: ISO 8601 start time.
        end_timestamp: ISO 8601 end time.
        elapsed_seconds: Whole seconds between start and end.
        requested_by: User name that requested the operation.
        requested_by_uid: User id that requested the operation.
        total_packages: Number of packages across all operation lists.
        install: Installed packages.
        reinstall: Reinstalled packages.
        upgrade: Upgraded packages.
        remove: Removed packages.
        purge: Purged packages.
        install_operation: True when install is non-empty (same for the other flags).
        error: Error line reported by APT, if any.
    """

    event_id: str = ""
    command_line: str = ""
    start_timestamp: str = ""
    end_timestamp: str = ""
    elapsed_seconds: int = 0
    requested_by: str = ""
    requested_by_uid: int = 0
    total_packages: int = 0
    install: list[PackageInfo] = field(default_factory=list)
    reinstall: list[PackageInfo] = field(default_factory=list)
    upgrade: list[PackageInfo] = field(default_factory=list)
    remove: list[PackageInfo] = field(default_factory=list)
    purge: list[PackageInfo] = field(default_factory=list)
    install_operation: bool = False
    reinstall_operation: bool = False
    upgrade_operation: bool = False
    remove_operation: bool = False
    purge_operation: bool = False
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire layout, omitting empty optional fields."""
        data: dict[str, Any] = {
            "EventID": self.event_id,
            "CommandLine": self.command_line,
            "StartTimestamp": self.start_timestamp,
            "EndTimeStamp": self.end_timestamp,
            "ElapsedSeconds": self.elapsed_seconds,
        }
        optional: list[tuple[str, Any]] = [
            ("RequestedBy", self.requested_by),
            ("RequestedByUID", self.requested_by_uid),
            ("TotalPackages", self.total_packages),
        ]
        optional += [
            (list_field.key, [pkg.to_dict() for pkg in list_field.get(self)])
            for list_field in PACKAGE_LISTS
        ]
        optional += [
            ("InstallOperation", self.install_operation),
            ("ReinstallOperation", self.reinstall_operation),
            ("UpgradeOperation", self.upgrade_operation),
            ("RemoveOperation", self.remove_operation),
            ("PurgeOperation", self.purge_operation),
            ("Error", self.error),
        ]
        for key, value in optional:
            if value:
                data[key] = value
        return data

    def to_json(self, indent: int | None = None) -> str:
        if indent is None:
            return json.dumps(self.to_dict(), separators=(",", ":"))
        return json.dumps(self.to_dict(), indent=indent)

    def package_lists(self) -> dict[str, list[PackageInfo]]:
        """Map operation name (e.g. "install") to its package list."""
        return {list_field.name: list_field.get(self) for list_field in PACKAGE_LISTS}


class ListField(NamedTuple):
    """Accessor pair for one splittable list attribute of a record."""

    name: str
    key: str
    get: Callable[[Any], list]
    set: Callable[[Any, list], Any]


def _list_field(name: str) -> ListField:
    return ListField(
        name=name,
        key=name.capitalize(),
        get=attrgetter(name),
        set=lambda record, items: replace(record, **{name: list(items)}),
    )


# Declaration order is the order chunks are emitted in
PACKAGE_LISTS: tuple[ListField, ...] = tuple(
    _list_field(name) for name in ("install", "reinstall", "upgrade", "remove", "purge")
)

OPERATIONS: tuple[str, ...] = tuple(list_field.name for list_field in PACKAGE_LISTS)
