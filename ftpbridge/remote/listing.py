"""
Directory listing for the file browser.

Entries are returned directories first, each group in natural order
("Episode 2" sorts before "Episode 10"), ignoring case.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ftpbridge.remote.client import RemoteConnection

_DIGITS = re.compile(r"(\d+)")


@dataclass
class RemoteEntry:
    """One child of a remote directory."""

    name: str
    path: str
    size: int = 0
    modified: datetime | None = None
    is_directory: bool = False


def natural_sort_key(name: str) -> list[Any]:
    """
    Sort key that compares digit runs numerically.

    >>> sorted(["b10", "B2", "a"], key=natural_sort_key)
    ['a', 'B2', 'b10']
    """
    return [
        (0, int(part), "") if part.isdigit() else (1, 0, part.casefold())
        for part in _DIGITS.split(name)
        if part
    ]


def _parse_modify(value: str | None) -> datetime | None:
    """Parse an MLSD/LIST ``modify`` fact (``YYYYMMDDHHMMSS[.sss]``)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S")
    except ValueError:
        return None


def entry_from_info(parent: str, name: str, info: dict[str, Any]) -> RemoteEntry:
    """Build a RemoteEntry from an aioftp listing fact dict."""
    is_directory = info.get("type") == "dir"
    try:
        size = int(info.get("size", 0))
    except (TypeError, ValueError):
        size = 0

    return RemoteEntry(
        name=name,
        path=posixpath.join(parent, name),
        size=0 if is_directory else size,
        modified=_parse_modify(info.get("modify")),
        is_directory=is_directory,
    )


def sort_entries(entries: list[RemoteEntry]) -> list[RemoteEntry]:
    """Directories first, then files, both in natural order."""
    directories = sorted((e for e in entries if e.is_directory), key=lambda e: natural_sort_key(e.name))
    files = sorted((e for e in entries if not e.is_directory), key=lambda e: natural_sort_key(e.name))
    return directories + files


async def list_directory(connection: RemoteConnection, path: str) -> list[RemoteEntry]:
    """
    List a remote directory.

    Args:
        connection: An open connection.
        path: Absolute directory path.

    Returns:
        Sorted entries, without the ``.`` and ``..`` pseudo entries.
    """
    raw = await connection.list(path)
    entries = []
    for child, info in raw:
        name = child.name
        # pathlib collapses "." into the parent, so rely on the MLSD type too
        if name in ("", ".", "..") or info.get("type") in ("cdir", "pdir"):
            continue
        entries.append(entry_from_info(path, name, info))
    return sort_entries(entries)
