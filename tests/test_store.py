"""
Unit tests for remoteview.store module.

Tests cover:
- MemoryStore get/set and None-as-delete
- JsonFileStore persistence across instances
- JsonFileStore tolerates missing, corrupt and non-object files
- Both stores satisfy the PersistentStore protocol
"""

import json
import logging
from pathlib import Path

from remoteview.store import JsonFileStore, MemoryStore, PersistentStore


class TestMemoryStore:
    def test_get_default(self):
        store = MemoryStore()
        assert store.get("missing") is None
        assert store.get("missing", 5) == 5

    def test_set_and_delete(self):
        store = MemoryStore({"a": 1})
        store.set("b", {"x": 2})
        assert store.get("b") == {"x": 2}

        store.set("a", None)
        assert store.get("a", "gone") == "gone"

    def test_is_persistent_store(self):
        assert isinstance(MemoryStore(), PersistentStore)


class TestJsonFileStore:
    def test_values_survive_reload(self, tmp_path: Path):
        path = tmp_path / "meta" / "store.json"
        JsonFileStore(path).set("key", {"size": 3})

        assert path.exists()
        assert JsonFileStore(path).get("key") == {"size": 3}

    def test_none_deletes_key(self, tmp_path: Path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        store.set("key", [1])
        store.set("key", None)

        assert json.loads(path.read_text(encoding="utf-8")) == {}

    def test_missing_file_starts_empty(self, tmp_path: Path):
        store = JsonFileStore(tmp_path / "absent.json")
        assert store.get("anything") is None

    def test_corrupt_file_starts_empty(self, tmp_path: Path, caplog):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="remoteview.store"):
            store = JsonFileStore(path)

        assert store.get("key") is None
        assert "Failed to load metadata store" in caplog.text

    def test_non_object_file_starts_empty(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert JsonFileStore(path).get("0") is None

    def test_is_persistent_store(self, tmp_path: Path):
        assert isinstance(JsonFileStore(tmp_path / "s.json"), PersistentStore)
