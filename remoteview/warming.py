"""
Cache Warming Scheduler

Proactively loads directory listings and important files in the background
so interactive lookups find them in the cache instead of waiting on the
remote.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from .cache import EntryCache
from .config import WarmingConfig
from .entry import FileMeta
from .index import IndexBuilder
from .paths import IMPORTANT_FILENAMES, ROOT, base_name, depth, extension, normalize_path
from .remote_client import RemoteClient

logger = logging.getLogger(__name__)

WARM_EXTENSIONS = frozenset(
    {".json", ".md", ".txt", ".xml", ".yml", ".yaml", ".php", ".js", ".css", ".html"}
)
WARM_DIRECTORIES = frozenset({"src", "app", "public", "assets", "config", "includes", "lib"})

# Used when the root cannot even be listed
FALLBACK_BACKGROUND = ("/src", "/app", "/public")


class Tier(str, Enum):
    IMMEDIATE = "immediate"
    BACKGROUND = "background"
    ON_DEMAND = "on_demand"


@dataclass
class WarmingTask:
    path: str
    tier: Tier


@dataclass
class WarmingStrategy:
    immediate: list[str] = field(default_factory=list)
    background: list[str] = field(default_factory=list)
    on_demand: list[str] = field(default_factory=list)

    def tasks(self) -> list[WarmingTask]:
        return (
            [WarmingTask(path, Tier.IMMEDIATE) for path in self.immediate]
            + [WarmingTask(path, Tier.BACKGROUND) for path in self.background]
            + [WarmingTask(path, Tier.ON_DEMAND) for path in self.on_demand]
        )


@dataclass
class WarmingStatus:
    active: bool
    queue_size: int
    in_flight_count: int
    completed: int = 0
    failed: int = 0


def is_warm_file(path: str) -> bool:
    """Files worth fetching before anyone asks for them."""
    return base_name(path) in IMPORTANT_FILENAMES or extension(path) in WARM_EXTENSIONS


def is_warm_directory(path: str, max_depth: int) -> bool:
    """Top-level directories, and anything inside a well-known source directory."""
    level = depth(path)
    if level == 0 or level > max_depth:
        return False
    if level == 1:
        return True
    segments = normalize_path(path).lower().strip("/").split("/")
    return any(segment in WARM_DIRECTORIES for segment in segments)


class WarmingScheduler:
    """
    Tiered background warming of an EntryCache.

    start() lists the root, warms the immediate tier before returning and
    hands the background tier to a loop task that keeps at most
    max_concurrent fetches in flight. Warming a directory discovers and
    enqueues further directories, so the crawl expands on its own.
    """

    def __init__(
        self,
        cache: EntryCache,
        index: IndexBuilder,
        remote: RemoteClient,
        config: WarmingConfig | None = None,
    ):
        self.cache = cache
        self.index = index
        self.remote = remote
        self.config = config or WarmingConfig()
        self.strategy: WarmingStrategy | None = None

        self._queue: deque[str] = deque()
        self._queued: set[str] = set()
        self._kinds: dict[str, bool] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._loop_task: asyncio.Task | None = None
        self._startup_task: asyncio.Task | None = None
        self._started = False
        self._completed = 0
        self._failed = 0

    async def start(self) -> WarmingStrategy:
        """
        Build the warming strategy, warm the immediate tier and start the loop.

        Returns:
            The strategy that was applied.
        """
        if self._started:
            logger.debug("Cache warming already in progress")
            return self.strategy or WarmingStrategy()
        if not self.config.enabled:
            logger.info("Cache warming disabled by configuration")
            return WarmingStrategy()

        self._started = True
        logger.info("Starting cache warming")

        startup = asyncio.create_task(self._startup(), name="remoteview-warming-startup")
        self._startup_task = startup
        try:
            await asyncio.wait([startup])
        finally:
            startup.cancel()
            self._startup_task = None

        if startup.cancelled() or not self._started:
            logger.info("Cache warming stopped during startup")
            return self.strategy or WarmingStrategy()

        strategy = startup.result()
        for path in strategy.background:
            self.enqueue(path, is_dir=True)
        if self._started and self._queue:
            self._ensure_loop()
        return strategy

    async def stop(self) -> None:
        """Cancel the loop and all in-flight fetches, and drop the queue."""
        self._started = False
        tasks = list(self._in_flight.values())
        for task in (self._loop_task, self._startup_task):
            if task is not None:
                tasks.append(task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._loop_task = None
        self._in_flight.clear()
        self._queue.clear()
        self._queued.clear()
        self._kinds.clear()
        logger.info("Cache warming stopped")

    def enqueue(self, path: str, is_dir: bool | None = None) -> bool:
        """
        Add a path to the background queue.

        Args:
            path: The path to warm.
            is_dir: Whether the path is a directory, when known. A trailing
                "/" also marks a directory; otherwise the kind is guessed
                when the path is warmed.

        Returns:
            False if the path is already queued or being warmed.
        """
        if is_dir is None and path.endswith("/"):
            is_dir = True
        path = normalize_path(path)
        if path in self._queued or path in self._in_flight:
            return False
        if is_dir is not None:
            self._kinds[path] = is_dir

        self._queue.append(path)
        self._queued.add(path)
        logger.debug("Added %s to warming queue", path)
        if self._started:
            self._ensure_loop()
        return True

    def status(self) -> WarmingStatus:
        loop_running = self._loop_task is not None and not self._loop_task.done()
        starting = self._startup_task is not None and not self._startup_task.done()
        return WarmingStatus(
            active=loop_running or starting or bool(self._in_flight),
            queue_size=len(self._queue),
            in_flight_count=len(self._in_flight),
            completed=self._completed,
            failed=self._failed,
        )

    async def join(self) -> None:
        """Wait until the background loop has drained the queue."""
        while self._loop_task is not None and not self._loop_task.done():
            await asyncio.wait([self._loop_task])

    # -- strategy ------------------------------------------------------------

    async def _startup(self) -> WarmingStrategy:
        strategy = await self._build_strategy()
        self.strategy = strategy
        await self._warm_immediate(strategy.immediate)
        return strategy

    async def _build_strategy(self) -> WarmingStrategy:
        strategy = WarmingStrategy(immediate=[ROOT])

        entries = await self.index.list_directory(ROOT)
        if entries is None:
            logger.warning("Root listing failed; using fallback warming strategy")
            strategy.background = list(FALLBACK_BACKGROUND)
            return strategy

        for entry in entries:
            if entry.is_dir:
                if is_warm_directory(entry.path, self.config.max_depth):
                    strategy.background.append(entry.path)
                else:
                    strategy.on_demand.append(entry.path)
            elif is_warm_file(entry.path):
                strategy.immediate.append(entry.path)
            else:
                strategy.on_demand.append(entry.path)

        logger.info(
            "Created warming strategy: %d immediate, %d background, %d on demand",
            len(strategy.immediate),
            len(strategy.background),
            len(strategy.on_demand),
        )
        return strategy

    async def _warm_immediate(self, paths: list[str]) -> None:
        limit = asyncio.Semaphore(self.config.max_concurrent)

        async def bounded(path: str) -> None:
            async with limit:
                await self._warm_path(path, is_dir=path == ROOT)

        await asyncio.gather(*(bounded(path) for path in paths))
        logger.debug("Completed immediate warming of %d paths", len(paths))

    # -- background loop -----------------------------------------------------

    def _ensure_loop(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(
                self._process_queue(), name="remoteview-warming"
            )

    async def _process_queue(self) -> None:
        logger.debug("Background warming loop started")
        while self._queue or self._in_flight:
            free_slots = self.config.max_concurrent - len(self._in_flight)
            take = min(free_slots, self.config.batch_size, len(self._queue))
            for _ in range(take):
                path = self._queue.popleft()
                self._queued.discard(path)
                is_dir = self._kinds.pop(path, None)
                self._in_flight[path] = asyncio.create_task(self._run_tracked(path, is_dir))

            if self._in_flight:
                # Continue as soon as a slot frees up; the timeout is the backstop
                await asyncio.wait(
                    list(self._in_flight.values()),
                    timeout=self.config.delay_seconds,
                    return_when=asyncio.FIRST_COMPLETED,
                )

        logger.info(
            "Background cache warming completed (%d warmed, %d failed)",
            self._completed,
            self._failed,
        )

    async def _run_tracked(self, path: str, is_dir: bool | None) -> None:
        try:
            await self._warm_path(path, is_dir)
        finally:
            self._in_flight.pop(path, None)

    # -- warming one path ----------------------------------------------------

    async def _warm_path(self, path: str, is_dir: bool | None = None) -> None:
        if is_dir is None:
            is_dir = self._looks_like_directory(path)
        try:
            if is_dir:
                await self._warm_directory(path)
            else:
                await self._warm_file(path)
        except Exception as e:
            self._failed += 1
            logger.warning("Failed to warm %s: %s", path, e)

    def _looks_like_directory(self, path: str) -> bool:
        entry = self.index.get_entry(path)
        if entry is not None:
            return entry.is_dir
        return path == ROOT or "." not in base_name(path)

    async def _warm_directory(self, path: str) -> None:
        if self.cache.has_directory(path):
            logger.debug("Directory %s already cached", path)
            return

        entries = await self.index.list_directory(path)
        if entries is None:
            self._failed += 1
            return

        self._completed += 1
        for entry in entries:
            if entry.is_dir and is_warm_directory(entry.path, self.config.max_depth):
                self.enqueue(entry.path, is_dir=True)

    async def _warm_file(self, path: str) -> None:
        if self.cache.has_file(path):
            logger.debug("File %s already cached", path)
            return

        result = await self.remote.read_file(path)
        headers = {key.lower(): value for key, value in (result.headers or {}).items()}
        entry = self.index.get_entry(path)
        meta = FileMeta(
            size=len(result.content),
            mtime=entry.modified_time if entry and entry.modified_time else time.time(),
            etag=headers.get("etag"),
            content_type=headers.get("content-type"),
        )
        self.cache.set_file(path, result.content, meta)
        self._completed += 1
        logger.debug("Warmed file %s (%d bytes)", path, len(result.content))
