"""
Bounded TTL+LRU cache for remote file content and directory listings.

Two independent categories (file content, directory listings) each have a
byte budget and an entry budget. Records are evicted least-recently-used
first when an insert would exceed either budget, expire after a per-path
TTL, and are swept periodically by a background task.

Only file metadata is persisted across restarts; content is always
refetched from the remote on a cold cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from cachetools import Cache, LRUCache

from .config import CacheConfig
from .entry import Entry, FileMeta
from .paths import is_important_path, normalize_path, normalize_prefix
from .store import PersistentStore

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"
METADATA_KEY = f"remoteview-cache-{CACHE_VERSION}"

# Estimated per-child cost of a cached directory listing, on top of the path
LISTING_ENTRY_OVERHEAD = 64

# Files read this many times get their metadata persisted
PERSIST_AFTER_READS = 3

T = TypeVar("T")


@dataclass
class CacheRecord(Generic[T]):
    value: T
    inserted_at: float
    last_access_at: float
    ttl: float
    byte_size: int
    access_count: int = 0
    meta: FileMeta | None = None
    etag: str | None = None

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CategoryStats:
    entries: int
    bytes: int
    max_bytes: int
    max_entries: int
    hits: int
    misses: int
    evictions: int
    expirations: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


@dataclass
class CacheStats:
    files: CategoryStats
    directories: CategoryStats
    most_accessed: list[str]


def _record_size(record: CacheRecord) -> int:
    return record.byte_size


class _RecordStore(LRUCache):
    """
    Byte-sized LRU map of CacheRecords for one category.

    cachetools keeps the access order; reading through __getitem__ refreshes
    it, peek() does not.
    """

    def __init__(self, category: str, max_bytes: int, max_entries: int):
        super().__init__(maxsize=max_bytes, getsizeof=_record_size)
        self.category = category
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def peek(self, key: str) -> CacheRecord | None:
        try:
            return Cache.__getitem__(self, key)
        except KeyError:
            return None

    def touch(self, key: str) -> CacheRecord:
        return self[key]

    def popitem(self):
        key, record = super().popitem()
        self.evictions += 1
        logger.debug(
            "Evicted LRU %s entry %s (%d bytes)", self.category, key, record.byte_size
        )
        return key, record

    def make_room(self, size: int) -> None:
        while len(self) and (
            self.currsize + size > self.maxsize or len(self) >= self.max_entries
        ):
            self.popitem()

    def clear(self) -> None:
        # MutableMapping.clear() would go through popitem() and count evictions
        for key in list(self):
            del self[key]

    def stats(self) -> CategoryStats:
        return CategoryStats(
            entries=len(self),
            bytes=self.currsize,
            max_bytes=self.maxsize,
            max_entries=self.max_entries,
            hits=self.hits,
            misses=self.misses,
            evictions=self.evictions,
            expirations=self.expirations,
        )


class EntryCache:
    """
    Cache for remote file content and directory listings.

    Every method is synchronous and never raises: absence is reported as
    None. The periodic expiry sweep runs as an asyncio task between start()
    and dispose().
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        store: PersistentStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig()
        self._store = store
        self._clock = clock
        self._files = _RecordStore(
            "file", self.config.file_max_bytes, self.config.file_max_entries
        )
        self._directories = _RecordStore(
            "directory", self.config.directory_max_bytes, self.config.directory_max_entries
        )
        self._sweep_task: asyncio.Task | None = None
        self._metadata: dict[str, dict[str, Any]] = self._load_metadata()
        self._metadata_dirty = False

    # -- files ---------------------------------------------------------------

    def get_file(self, path: str) -> bytes | None:
        """
        Retrieve cached file content if present and not expired.

        Refreshes the record's LRU position and access statistics.
        """
        key = normalize_path(path)
        record = self._lookup(self._files, key)
        if record is None:
            return None

        if record.access_count == PERSIST_AFTER_READS:
            self._persist(key, record)

        logger.debug("Cache hit for file %s (%d bytes)", key, record.byte_size)
        return record.value

    def set_file(self, path: str, content: bytes, meta: FileMeta | None = None) -> None:
        """
        Cache file content, evicting least recently used files if needed.

        Args:
            path: The file path.
            content: The full file content.
            meta: Size/mtime/etag/content type; derived from content if omitted.
        """
        key = normalize_path(path)
        content = bytes(content)
        now = self._clock()
        if meta is None:
            meta = FileMeta(size=len(content), mtime=now)

        record = CacheRecord(
            value=content,
            inserted_at=now,
            last_access_at=now,
            ttl=self._ttl(key, self.config.file_ttl_seconds),
            byte_size=len(content),
            meta=meta,
            etag=meta.etag,
        )
        if not self._insert(self._files, key, record):
            self._forget([key])
            return

        logger.debug(
            "Cached file %s (%d bytes, total %d)", key, record.byte_size, self._files.currsize
        )
        if is_important_path(key):
            self._persist(key, record)

    def delete_file(self, path: str) -> None:
        key = normalize_path(path)
        record = self._files.pop(key, None)
        if record is not None:
            logger.debug("Deleted file %s from cache (%d bytes)", key, record.byte_size)
        self._forget([key])

    def has_file(self, path: str) -> bool:
        """True if unexpired content is cached. Does not count as an access."""
        return self._present(self._files, normalize_path(path))

    def file_metadata(self, path: str) -> dict[str, Any] | None:
        """Persisted metadata for a file, available even when its content is not cached."""
        metadata = self._metadata.get(normalize_path(path))
        return dict(metadata) if metadata is not None else None

    # -- directories ---------------------------------------------------------

    def get_directory(self, path: str) -> list[Entry] | None:
        """Retrieve a cached directory listing if present and not expired."""
        key = normalize_path(path)
        record = self._lookup(self._directories, key)
        if record is None:
            return None

        logger.debug("Directory cache hit for %s (%d entries)", key, len(record.value))
        return list(record.value)

    def set_directory(
        self, path: str, entries: Iterable[Entry], etag: str | None = None
    ) -> None:
        """Cache a directory listing, replacing any previous listing for path."""
        key = normalize_path(path)
        listing = []
        for entry in entries:
            if isinstance(entry, Entry):
                listing.append(entry)
            else:
                logger.debug("Dropping non-entry item from listing of %s: %r", key, entry)
        listing = tuple(listing)

        now = self._clock()
        record = CacheRecord(
            value=listing,
            inserted_at=now,
            last_access_at=now,
            ttl=self._ttl(key, self.config.directory_ttl_seconds),
            byte_size=sum(
                len(e.path.encode("utf-8")) + LISTING_ENTRY_OVERHEAD for e in listing
            ),
            etag=etag,
        )
        if self._insert(self._directories, key, record):
            logger.debug("Cached directory %s (%d entries)", key, len(listing))

    def delete_directory(self, path: str) -> None:
        """Drop the listing for exactly this path; descendants are untouched."""
        key = normalize_path(path)
        if self._directories.pop(key, None) is not None:
            logger.debug("Deleted directory %s from cache", key)

    def has_directory(self, path: str) -> bool:
        """True if an unexpired listing is cached. Does not count as an access."""
        return self._present(self._directories, normalize_path(path))

    # -- bulk ----------------------------------------------------------------

    def delete_recursive(self, prefix: str) -> int:
        """
        Delete every file and directory record whose path starts with prefix.

        Returns:
            Number of records removed.
        """
        prefix = normalize_prefix(prefix)
        removed = 0
        for records in (self._files, self._directories):
            doomed = [key for key in records if key.startswith(prefix)]
            for key in doomed:
                del records[key]
            removed += len(doomed)

        self._forget([key for key in self._metadata if key.startswith(prefix)])
        logger.debug("Recursive cache deletion for %s removed %d records", prefix, removed)
        return removed

    def clear(self) -> None:
        self._files.clear()
        self._directories.clear()
        self._metadata.clear()
        self._metadata_dirty = False
        self._save_metadata()
        logger.debug("Cache cleared")

    def sweep(self) -> int:
        """Remove all expired records. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for records in (self._files, self._directories):
            expired = [key for key in list(records) if records.peek(key).is_expired(now)]
            for key in expired:
                del records[key]
            records.expirations += len(expired)
            removed += len(expired)

        if removed:
            logger.debug("Cleaned up %d expired cache entries", removed)
        return removed

    def stats(self) -> CacheStats:
        by_access = sorted(
            ((key, self._files.peek(key)) for key in self._files),
            key=lambda item: item[1].access_count,
            reverse=True,
        )
        return CacheStats(
            files=self._files.stats(),
            directories=self._directories.stats(),
            most_accessed=[key for key, _ in by_access[:10]],
        )

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="remoteview-cache-sweep"
        )
        logger.debug(
            "Cache sweep started (every %ss)", self.config.sweep_interval_seconds
        )

    def flush_metadata(self) -> bool:
        """
        Write pending metadata changes to the persistent store.

        Returns:
            True if anything was written.
        """
        if not self._metadata_dirty:
            return False
        self._metadata_dirty = False
        self._save_metadata()
        return True

    async def dispose(self) -> None:
        """Stop the periodic sweep and flush pending metadata. Cached records are kept."""
        self.flush_metadata()
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.debug("Cache sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_seconds)
            self.sweep()
            self.flush_metadata()

    # -- internals -----------------------------------------------------------

    def _ttl(self, key: str, base_ttl: float) -> float:
        if is_important_path(key):
            return base_ttl * self.config.important_ttl_multiplier
        return base_ttl

    def _lookup(self, records: _RecordStore, key: str) -> CacheRecord | None:
        record = records.peek(key)
        if record is None:
            records.misses += 1
            return None

        now = self._clock()
        if record.is_expired(now):
            del records[key]
            records.expirations += 1
            records.misses += 1
            return None

        records.touch(key)
        record.last_access_at = now
        record.access_count += 1
        records.hits += 1
        return record

    def _present(self, records: _RecordStore, key: str) -> bool:
        record = records.peek(key)
        return record is not None and not record.is_expired(self._clock())

    def _insert(self, records: _RecordStore, key: str, record: CacheRecord) -> bool:
        # Whole-record replace: the old record never shares budget with the new one
        records.pop(key, None)

        if record.byte_size > records.maxsize:
            logger.warning(
                "Not caching %s %s: %d bytes exceeds the %d byte budget",
                records.category,
                key,
                record.byte_size,
                records.maxsize,
            )
            return False

        records.make_room(record.byte_size)
        records[key] = record

        assert 0 <= records.currsize <= records.maxsize, "cache byte accounting broken"
        assert len(records) <= records.max_entries, "cache entry accounting broken"
        return True

    def _load_metadata(self) -> dict[str, dict[str, Any]]:
        if self._store is None:
            return {}
        try:
            stored = self._store.get(METADATA_KEY) or {}
        except Exception as e:
            logger.warning("Failed to load persistent cache metadata: %s", e)
            return {}

        now = self._clock()
        metadata = {
            key: value
            for key, value in stored.items()
            if isinstance(value, dict) and value.get("expires_at", 0) > now
        }
        if metadata:
            logger.debug("Loaded persistent metadata for %d files", len(metadata))
        return metadata

    def _persist(self, key: str, record: CacheRecord) -> None:
        meta = record.meta
        self._metadata[key] = {
            "size": meta.size if meta else record.byte_size,
            "mtime": meta.mtime if meta else record.inserted_at,
            "etag": record.etag,
            "content_type": meta.content_type if meta else None,
            "expires_at": record.expires_at,
        }
        self._metadata_dirty = True

    def _forget(self, keys: list[str]) -> None:
        changed = False
        for key in keys:
            if self._metadata.pop(key, None) is not None:
                changed = True
        if changed:
            self._metadata_dirty = True

    def _save_metadata(self) -> None:
        if self._store is None:
            return
        try:
            self._store.set(METADATA_KEY, dict(self._metadata) or None)
        except Exception as e:
            logger.warning("Failed to save persistent cache metadata: %s", e)
