"""
Shared pytest fixtures for remoteview tests.
"""

import asyncio
from collections.abc import Generator
from pathlib import Path

import pytest

from remoteview.config import CacheConfig, IndexConfig, WarmingConfig
from remoteview.entry import RemoteEntry
from remoteview.paths import normalize_path
from remoteview.remote_client import ReadResult

FIXED_MTIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemote:
    """
    In-memory RemoteClient.

    The tree is a nested dict: dict values are directories, bytes values are
    files. Per-path delays and failures can be injected, and every call is
    recorded in order.
    """

    def __init__(self, tree: dict | None = None):
        self.tree = tree if tree is not None else {}
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _node(self, path: str):
        node = self.tree
        for part in [p for p in normalize_path(path).split("/") if p]:
            if not isinstance(node, dict) or part not in node:
                raise FileNotFoundError(f"No such file or directory: {path}")
            node = node[part]
        return node

    def _parent_and_name(self, path: str):
        path = normalize_path(path)
        parent, name = path.rsplit("/", 1)
        return self._node(parent or "/"), name

    def put(self, path: str, value) -> None:
        """Create or replace a file (bytes) or directory (dict)."""
        parent, name = self._parent_and_name(path)
        parent[name] = value

    def remove(self, path: str) -> None:
        parent, name = self._parent_and_name(path)
        del parent[name]

    async def _enter(self, op: str, path: str) -> None:
        path = normalize_path(path)
        self.calls.append((op, path))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(path)
            if delay:
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)
            if path in self.failures:
                raise self.failures[path]
        finally:
            self.in_flight -= 1

    async def list_directory(self, path: str) -> list[RemoteEntry]:
        await self._enter("list", path)
        node = self._node(path)
        if not isinstance(node, dict):
            raise NotADirectoryError(f"Not a directory: {path}")
        return [
            RemoteEntry(
                name=name,
                is_dir=isinstance(child, dict),
                size=0 if isinstance(child, dict) else len(child),
                mtime=FIXED_MTIME,
            )
            for name, child in node.items()
        ]

    async def read_file(self, path: str) -> ReadResult:
        await self._enter("read", path)
        node = self._node(path)
        if isinstance(node, dict):
            raise IsADirectoryError(f"Is a directory: {path}")
        return ReadResult(
            content=node,
            headers={"ETag": f'"{normalize_path(path)}"', "Content-Type": "text/plain"},
        )

    def listed(self) -> list[str]:
        return [path for op, path in self.calls if op == "list"]

    def read(self) -> list[str]:
        return [path for op, path in self.calls if op == "read"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_tree() -> dict:
    """A small project-like remote tree."""
    return {
        "README.md": b"# project\n",
        "package.json": b'{"name": "demo"}',
        "notes.bin": b"\x00\x01\x02",
        "src": {
            "main.js": b"console.log(1)",
            "lib": {"util.js": b"export {}"},
        },
        "public": {"index.html": b"<html></html>"},
        "logs": {"app.log": b"line\n"},
    }


@pytest.fixture
def fake_remote(sample_tree) -> FakeRemote:
    return FakeRemote(sample_tree)


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        file_ttl_seconds=300,
        directory_ttl_seconds=120,
        important_ttl_multiplier=2.0,
        file_max_bytes=1024 * 1024,
        file_max_entries=100,
        directory_max_bytes=1024 * 1024,
        directory_max_entries=100,
        sweep_interval_seconds=60,
    )


@pytest.fixture
def index_config() -> IndexConfig:
    return IndexConfig(batch_size=50, max_concurrent=5, batch_delay_seconds=0, timeout_seconds=30)


@pytest.fixture
def warming_config() -> WarmingConfig:
    return WarmingConfig(enabled=True, batch_size=10, max_concurrent=3, delay_seconds=0.01, max_depth=4)


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[ssh]
host = testserver.local
port = 2222
username = deploy
key_file = ~/.ssh/id_ed25519
use_agent = false
root_path = /var/www/site/

[connection]
timeout_seconds = 45
retry_attempts = 5
retry_delay_seconds = 2

[cache]
file_ttl_seconds = 600
directory_ttl_seconds = 60
file_max_bytes = 1048576
file_max_entries = 50

[index]
batch_size = 20
max_concurrent = 3
timeout_seconds = 12.5

[warming]
enabled = false
delay_seconds = 0.25

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file with only required fields.

    Returns:
        Path to the temporary config file.
    """
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text("[ssh]\nhost = minimal.server.com\n", encoding="utf-8")
    yield config_path


@pytest.fixture
def make_remote():
    """Factory for FakeRemote instances over a custom tree."""
    return FakeRemote
