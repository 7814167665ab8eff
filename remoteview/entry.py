"""
Entry types shared by the cache and the index.

Remote listings arrive as loosely-shaped RemoteEntry items; they are
validated into Entry records at the cache/index boundary.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .paths import ROOT, join_path, normalize_path


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class RemoteEntry:
    """Standardized listing item returned by a RemoteClient."""

    name: str
    is_dir: bool
    size: int = 0
    mtime: float | datetime | None = None


@dataclass
class FileMeta:
    """Metadata stored alongside cached file content."""

    size: int
    mtime: float
    etag: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class Entry:
    """One file or directory record. The normalized path is its identity."""

    path: str
    kind: EntryKind
    size: int = 0
    modified_time: float = 0.0
    etag: str | None = None
    content_type: str | None = None
    synthetic: bool = False

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def name(self) -> str:
        if self.path == ROOT:
            return ""
        return self.path.rsplit("/", 1)[-1]

    @classmethod
    def from_remote(cls, parent: str, item: RemoteEntry) -> Entry:
        """
        Build an Entry for a child of parent from a remote listing item.

        Raises:
            ValueError: If the item cannot describe a child of parent.
        """
        name = item.name
        if not isinstance(name, str) or not name:
            raise ValueError(f"Listing item without a name under {parent}")
        if "/" in name or "\\" in name:
            raise ValueError(f"Listing item name contains a separator: {name!r}")
        if name in (".", ".."):
            raise ValueError(f"Listing item is a relative reference: {name!r}")

        size = int(item.size or 0)
        if size < 0:
            raise ValueError(f"Negative size for {name!r}: {size}")

        return cls(
            path=join_path(parent, name),
            kind=EntryKind.DIRECTORY if item.is_dir else EntryKind.FILE,
            size=0 if item.is_dir else size,
            modified_time=_to_timestamp(item.mtime),
        )

    @classmethod
    def synthetic_entry(cls, path: str, kind: EntryKind, size: int = 0) -> Entry:
        return cls(
            path=normalize_path(path),
            kind=kind,
            size=size,
            modified_time=time.time(),
            synthetic=True,
        )


def _to_timestamp(value: float | datetime | None) -> float:
    if value is None:
        return 0.0
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)
