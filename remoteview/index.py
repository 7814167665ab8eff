"""
Path index of the remote tree.

Keeps a path -> Entry map and a directory -> child paths adjacency map,
built either quickly (root listing only) or by a full breadth-first
traversal, and kept current by incremental create/delete/rename hooks.
Synthetic entries live in a separate overlay that traversal never touches.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from .cache import EntryCache
from .config import IndexConfig
from .entry import Entry, EntryKind
from .paths import ROOT, base_name, normalize_path, parent_path
from .remote_client import RemoteClient

logger = logging.getLogger(__name__)


class IndexMode(str, Enum):
    QUICK = "quick"
    FULL = "full"


@dataclass
class RebuildResult:
    """Outcome of one quick or full indexing run."""

    mode: IndexMode
    directories_listed: int = 0
    directories_failed: int = 0
    entries: int = 0
    duration_seconds: float = 0.0
    timed_out: bool = False
    unvisited: int = 0


@dataclass
class IndexStats:
    files: int
    directories: int
    total_entries: int
    synthetic: int
    indexing: bool
    last_run: RebuildResult | None


RebuildCompletedSink = Callable[[RebuildResult], Awaitable[None] | None]


@dataclass
class _Traversal:
    """Per-run frontier bookkeeping."""

    frontier: deque = field(default_factory=lambda: deque([ROOT]))
    processed: set = field(default_factory=set)
    pending: set = field(default_factory=lambda: {ROOT})
    listed: int = 0
    failed: int = 0


class IndexBuilder:
    """
    Maintains the index of a remote tree.

    Only one indexing run is in flight at a time; concurrent callers share
    it. Remote failures and timeouts reduce completeness but never raise.
    """

    def __init__(
        self,
        remote: RemoteClient,
        cache: EntryCache | None = None,
        config: IndexConfig | None = None,
        on_rebuilt: RebuildCompletedSink | None = None,
    ):
        self.remote = remote
        self.cache = cache
        self.config = config or IndexConfig()
        self.on_rebuilt = on_rebuilt

        self._entries: dict[str, Entry] = {}
        self._children: dict[str, set[str]] = {}

        self._synthetic: dict[str, Entry] = {}
        self._synthetic_children: dict[str, set[str]] = {}
        self._synthetic_content: dict[str, bytes] = {}

        self._run: asyncio.Task | None = None
        self._run_mode: IndexMode | None = None
        self._last_run: RebuildResult | None = None

    # -- listing primitive ---------------------------------------------------

    async def list_directory(self, path: str, use_cache: bool = True) -> list[Entry] | None:
        """
        List one directory, preferring the cache.

        Remote results are validated into Entry records and written back to
        the cache. Returns None if the remote call failed.
        """
        path = normalize_path(path)
        if use_cache and self.cache is not None:
            cached = self.cache.get_directory(path)
            if cached is not None:
                return cached

        logger.debug("Directory cache miss - listing %s remotely", path)
        try:
            items = await self.remote.list_directory(path)
        except Exception as e:
            logger.warning("Listing %s failed: %s", path, e)
            return None

        entries = []
        for item in items:
            try:
                entries.append(Entry.from_remote(path, item))
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug("Skipping invalid listing item in %s: %s", path, e)

        if self.cache is not None:
            self.cache.set_directory(path, entries)
        return entries

    # -- indexing runs -------------------------------------------------------

    async def ensure_indexed(self) -> None:
        """Make sure an index exists, joining an in-flight run if there is one."""
        if self._run is not None:
            await asyncio.shield(self._run)
            return
        if self._entries:
            return
        await self.rebuild_index()

    async def rebuild_index(self, timeout: float | None = None) -> RebuildResult:
        """
        Full recursive rebuild.

        Args:
            timeout: Deadline in seconds for this run (defaults to
                IndexConfig.timeout_seconds). Ignored when joining a run
                that is already in flight.

        Returns:
            The RebuildResult of the run this call completed or joined.
        """
        return await self._single_flight(IndexMode.FULL, timeout)

    async def quick_index(self) -> RebuildResult:
        """Index the root directory only, for fast initial availability."""
        return await self._single_flight(IndexMode.QUICK, None)

    def is_indexing(self) -> bool:
        return self._run is not None

    async def _single_flight(self, mode: IndexMode, timeout: float | None) -> RebuildResult:
        while self._run is not None:
            running_mode = self._run_mode
            result = await asyncio.shield(self._run)
            # A full run satisfies any request; a quick run only a quick one
            if running_mode is mode or running_mode is IndexMode.FULL:
                return result

        self._run_mode = mode
        self._run = asyncio.create_task(
            self._execute(mode, timeout), name=f"remoteview-index-{mode.value}"
        )
        self._run.add_done_callback(self._run_finished)
        return await asyncio.shield(self._run)

    def _run_finished(self, task: asyncio.Task) -> None:
        if self._run is task:
            self._run = None
            self._run_mode = None

    async def _execute(self, mode: IndexMode, timeout: float | None) -> RebuildResult:
        started = time.monotonic()
        logger.info("Starting %s index", mode.value)
        if mode is IndexMode.QUICK:
            result = await self._index_root()
        else:
            result = await self._traverse(
                self.config.timeout_seconds if timeout is None else timeout
            )

        result.duration_seconds = time.monotonic() - started
        result.entries = len(self._entries)
        self._last_run = result
        logger.info(
            "%s index completed: %d directories listed, %d failed, %d entries in %.2fs",
            mode.value.capitalize(),
            result.directories_listed,
            result.directories_failed,
            result.entries,
            result.duration_seconds,
        )

        await self._notify(result)
        return result

    async def _index_root(self) -> RebuildResult:
        result = RebuildResult(mode=IndexMode.QUICK)
        entries = await self.list_directory(ROOT)
        if entries is None:
            result.directories_failed = 1
        else:
            self._apply_listing(ROOT, entries)
            result.directories_listed = 1
        return result

    async def _traverse(self, timeout: float) -> RebuildResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        state = _Traversal()
        result = RebuildResult(mode=IndexMode.FULL)

        while state.frontier and not result.timed_out:
            size = min(self.config.batch_size, len(state.frontier))
            batch = [state.frontier.popleft() for _ in range(size)]

            for offset in range(0, len(batch), self.config.max_concurrent):
                chunk = batch[offset : offset + self.config.max_concurrent]
                remaining = deadline - loop.time()
                if remaining <= 0:
                    result.timed_out = True
                    result.unvisited += len(batch) - offset
                    break

                tasks = [asyncio.create_task(self.list_directory(path)) for path in chunk]
                done, not_done = await asyncio.wait(tasks, timeout=remaining)
                for task in not_done:
                    task.cancel()
                if not_done:
                    await asyncio.gather(*not_done, return_exceptions=True)

                # Mutations for the whole chunk happen here, between awaits
                for path, task in zip(chunk, tasks):
                    if task in done:
                        self._record_listing(state, path, task.result())
                    else:
                        result.unvisited += 1

                if not_done:
                    result.timed_out = True
                    result.unvisited += len(batch) - offset - len(chunk)
                    break

                await asyncio.sleep(self.config.batch_delay_seconds)

        result.unvisited += len(state.frontier)
        result.directories_listed = state.listed
        result.directories_failed = state.failed

        if result.timed_out:
            logger.warning(
                "Index rebuild timed out after %ss; keeping partial index "
                "(%d directories listed, %d not visited)",
                timeout,
                state.listed,
                result.unvisited,
            )
        return result

    def _record_listing(self, state: _Traversal, path: str, entries: list[Entry] | None) -> None:
        state.processed.add(path)
        state.pending.discard(path)
        if entries is None:
            # Keep whatever we knew about this subtree
            state.failed += 1
            return

        state.listed += 1
        self._apply_listing(path, entries)
        for entry in entries:
            if (
                entry.is_dir
                and entry.path not in state.processed
                and entry.path not in state.pending
            ):
                state.pending.add(entry.path)
                state.frontier.append(entry.path)

    def _apply_listing(self, directory: str, entries: list[Entry]) -> None:
        fresh = {entry.path: entry for entry in entries}
        for stale in self._children.get(directory, set()) - fresh.keys():
            _remove_tree(self._entries, self._children, stale)

        for path, entry in fresh.items():
            previous = self._entries.get(path)
            if previous is not None and previous.is_dir and not entry.is_dir:
                _remove_tree(self._entries, self._children, path)
            self._entries[path] = entry

        self._children[directory] = set(fresh)

    async def _notify(self, result: RebuildResult) -> None:
        if self.on_rebuilt is None:
            return
        try:
            outcome = self.on_rebuilt(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Index completion callback failed: %s", e)

    def clear_index(self) -> None:
        """Forget the remote-derived index. Synthetic entries are kept."""
        self._entries.clear()
        self._children.clear()
        logger.debug("File index cleared")

    # -- incremental updates -------------------------------------------------

    async def on_created(self, path: str) -> Entry | None:
        """
        Splice a newly created remote path into the index.

        The parent is re-listed from the remote (refreshing its cached
        listing). Returns the new entry, or None if it could not be found.
        """
        path = normalize_path(path)
        if path == ROOT:
            return None

        parent = parent_path(path)
        entries = await self.list_directory(parent, use_cache=False)
        if entries is None:
            return None

        entry = next((e for e in entries if e.path == path), None)
        if entry is None:
            logger.debug("Created path %s not found in listing of %s", path, parent)
            return None

        previous = self._entries.get(path)
        if previous is not None and previous.is_dir and not entry.is_dir:
            _remove_tree(self._entries, self._children, path)
        self._entries[path] = entry
        self._children.setdefault(parent, set()).add(path)
        logger.debug("Added %s to index (directory=%s)", path, entry.is_dir)
        return entry

    def on_deleted(self, path: str) -> int:
        """
        Remove path and everything below it from the index and the cache.

        Returns:
            Number of index entries removed.
        """
        path = normalize_path(path)
        parent = parent_path(path)

        removed = 0
        for entries, children in (
            (self._entries, self._children),
            (self._synthetic, self._synthetic_children),
        ):
            removed += _remove_tree(entries, children, path)
            siblings = children.get(parent)
            if siblings is not None:
                siblings.discard(path)

        for key in [k for k in self._synthetic_content if _in_tree(k, path)]:
            del self._synthetic_content[key]

        if self.cache is not None:
            self.cache.delete_file(path)
            self.cache.delete_directory(path)
            self.cache.delete_recursive(path.rstrip("/") + "/")
            self.cache.delete_directory(parent)

        logger.debug("Removed %s from index (%d entries)", path, removed)
        return removed

    async def on_renamed(self, old_path: str, new_path: str) -> Entry | None:
        self.on_deleted(old_path)
        entry = await self.on_created(new_path)
        logger.debug("Renamed %s -> %s in index", old_path, new_path)
        return entry

    # -- synthetic overlay ---------------------------------------------------

    def add_synthetic_entry(
        self,
        path: str,
        kind: EntryKind | str = EntryKind.FILE,
        content: bytes | None = None,
    ) -> Entry:
        """
        Register a locally materialized entry with no remote counterpart.

        Raises:
            ValueError: For the root path, or content on a directory.
        """
        path = normalize_path(path)
        kind = EntryKind(kind)
        if path == ROOT:
            raise ValueError("The root directory cannot be synthetic")
        if content is not None and kind is EntryKind.DIRECTORY:
            raise ValueError(f"Synthetic directory {path} cannot have content")

        previous = self._synthetic.get(path)
        if previous is not None and previous.is_dir and kind is EntryKind.FILE:
            _remove_tree(self._synthetic, self._synthetic_children, path)

        entry = Entry.synthetic_entry(path, kind, size=len(content) if content else 0)
        self._synthetic[path] = entry
        self._synthetic_children.setdefault(parent_path(path), set()).add(path)
        if content is not None:
            self._synthetic_content[path] = bytes(content)
        else:
            self._synthetic_content.pop(path, None)

        logger.info("Synthetic %s added to index: %s", kind.value, path)
        return entry

    def remove_synthetic_entry(self, path: str) -> bool:
        path = normalize_path(path)
        if path not in self._synthetic:
            return False
        _remove_tree(self._synthetic, self._synthetic_children, path)
        siblings = self._synthetic_children.get(parent_path(path))
        if siblings is not None:
            siblings.discard(path)
        for key in [k for k in self._synthetic_content if _in_tree(k, path)]:
            del self._synthetic_content[key]
        return True

    def synthetic_content(self, path: str) -> bytes | None:
        return self._synthetic_content.get(normalize_path(path))

    # -- queries -------------------------------------------------------------

    def get_entry(self, path: str) -> Entry | None:
        path = normalize_path(path)
        return self._synthetic.get(path) or self._entries.get(path)

    def children(self, path: str) -> list[str]:
        path = normalize_path(path)
        merged = self._children.get(path, set()) | self._synthetic_children.get(path, set())
        return sorted(merged)

    def all_files(self) -> list[str]:
        return sorted(path for path, entry in self._merged().items() if not entry.is_dir)

    def search_by_name(self, pattern: str) -> list[str]:
        """Files whose base name contains pattern, case-insensitively."""
        needle = pattern.lower()
        results = sorted(
            path
            for path, entry in self._merged().items()
            if not entry.is_dir and needle in base_name(path).lower()
        )
        logger.debug("File search for %r matched %d files", pattern, len(results))
        return results

    def stats(self) -> IndexStats:
        merged = self._merged()
        directories = sum(1 for entry in merged.values() if entry.is_dir)
        return IndexStats(
            files=len(merged) - directories,
            directories=directories,
            total_entries=len(merged),
            synthetic=len(self._synthetic),
            indexing=self.is_indexing(),
            last_run=self._last_run,
        )

    def _merged(self) -> dict[str, Entry]:
        return {**self._entries, **self._synthetic}


def _in_tree(path: str, root: str) -> bool:
    if root == ROOT:
        return True
    return path == root or path.startswith(root + "/")


def _remove_tree(entries: dict[str, Entry], children: dict[str, set[str]], root: str) -> int:
    """Delete root and all its descendants from one entry/children map pair."""
    doomed = [path for path in entries if _in_tree(path, root)]
    for path in doomed:
        del entries[path]
    for path in [p for p in children if _in_tree(p, root)]:
        del children[path]
    return len(doomed)
