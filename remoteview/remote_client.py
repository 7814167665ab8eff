"""
Remote client protocol definition.

Defines the narrow read-only interface the cache, index and warming layers
consume, so any transport (SFTP, WebDAV, in-memory fakes) can back them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .entry import RemoteEntry


@dataclass
class ReadResult:
    """File content plus the response headers the transport knows about."""

    content: bytes
    headers: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class RemoteClient(Protocol):
    """Protocol defining the remote listing/read interface.

    Implementations raise OSError subclasses on failure (FileNotFoundError,
    PermissionError, ConnectionError, TimeoutError).
    """

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        """List contents of a directory.

        Args:
            path: Normalized path relative to the remote root.

        Returns:
            List of RemoteEntry objects for directory entries.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        ...

    async def read_file(self, path: str) -> ReadResult:
        """Read a whole file.

        Args:
            path: Normalized path relative to the remote root.

        Returns:
            ReadResult with the content and any headers (etag, content-type).
        """
        ...
