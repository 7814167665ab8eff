__version__ = "0.1.0"

# Public API exports
from .cache import CacheRecord, CacheStats, CategoryStats, EntryCache
from .config import (
    AppConfig,
    CacheConfig,
    ConnectionConfig,
    IndexConfig,
    LogConfig,
    SSHConfig,
    WarmingConfig,
    load_config,
)
from .entry import Entry, EntryKind, FileMeta, RemoteEntry
from .index import IndexBuilder, IndexMode, IndexStats, RebuildResult
from .remote_client import ReadResult, RemoteClient
from .sftp_client import SFTPClient, SFTPRemoteClient
from .store import JsonFileStore, MemoryStore, PersistentStore
from .warming import Tier, WarmingScheduler, WarmingStatus, WarmingStrategy, WarmingTask

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "SSHConfig",
    "ConnectionConfig",
    "CacheConfig",
    "IndexConfig",
    "WarmingConfig",
    "LogConfig",
    "load_config",
    # Entries
    "Entry",
    "EntryKind",
    "FileMeta",
    "RemoteEntry",
    # Clients
    "RemoteClient",
    "ReadResult",
    "SFTPClient",
    "SFTPRemoteClient",
    # Cache
    "EntryCache",
    "CacheRecord",
    "CacheStats",
    "CategoryStats",
    "PersistentStore",
    "MemoryStore",
    "JsonFileStore",
    # Index
    "IndexBuilder",
    "IndexMode",
    "IndexStats",
    "RebuildResult",
    # Warming
    "WarmingScheduler",
    "WarmingStrategy",
    "WarmingStatus",
    "WarmingTask",
    "Tier",
]
