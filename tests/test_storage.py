"""
Tests for JSON persistence shared by the stores.
"""

import asyncio
import json
import logging

import pytest

from hybrid_rag.storage import PersistentStore, write_json_atomic


class CounterStore(PersistentStore):
    store_name = "counter"

    def __init__(self, path=None):
        super().__init__(path)
        self.value = 0

    def to_payload(self):
        return {"value": self.value}

    def from_payload(self, payload):
        self.value = payload["value"]


class TestWriteJsonAtomic:
    """Tests for atomic file replacement."""

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "data.json"
        write_json_atomic(path, {"texto": "Cálculo"})
        assert json.loads(path.read_text(encoding="utf-8")) == {"texto": "Cálculo"}

    def test_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "data.json"
        write_json_atomic(path, [1, 2])
        write_json_atomic(path, [3])
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]
        assert json.loads(path.read_text()) == [3]

    def test_unserializable_payload_keeps_previous_file(self, tmp_path):
        """A failed write neither corrupts the target nor leaves a temp file."""
        path = tmp_path / "data.json"
        write_json_atomic(path, {"ok": True})
        with pytest.raises(TypeError):
            write_json_atomic(path, {"bad": object()})
        assert json.loads(path.read_text()) == {"ok": True}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]


class TestPersistentStore:
    """Tests for load, save and background persistence."""

    def test_in_memory_store_never_writes(self):
        store = CounterStore()
        store.value = 3
        assert store.save()
        assert not store.load()

    def test_save_and_load(self, tmp_path):
        store = CounterStore(tmp_path / "counter.json")
        store.value = 7
        assert store.save()

        reloaded = CounterStore(tmp_path / "counter.json")
        assert reloaded.load()
        assert reloaded.value == 7

    def test_missing_file_starts_empty(self, tmp_path):
        store = CounterStore(tmp_path / "missing.json")
        assert not store.load()
        assert store.value == 0

    def test_corrupt_file_is_logged_and_ignored(self, tmp_path, caplog):
        path = tmp_path / "counter.json"
        path.write_text("{not json", encoding="utf-8")
        store = CounterStore(path)
        with caplog.at_level(logging.ERROR):
            assert not store.load()
        assert store.value == 0
        assert "Could not load counter" in caplog.text

    def test_schedule_save_without_loop_writes_immediately(self, tmp_path):
        path = tmp_path / "counter.json"
        store = CounterStore(path)
        store.value = 2
        store.schedule_save()
        assert json.loads(path.read_text()) == {"value": 2}

    def test_flush_waits_for_background_writes(self, tmp_path):
        """Writes scheduled inside the loop are durable after flush()."""
        path = tmp_path / "counter.json"
        store = CounterStore(path)

        async def run():
            for i in range(1, 6):
                store.value = i
                store.schedule_save()
            return await store.flush()

        assert asyncio.run(run())
        assert json.loads(path.read_text()) == {"value": 5}
        assert not store._pending

    def test_failed_write_returns_false(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        store = CounterStore(blocker / "counter.json")
        with caplog.at_level(logging.ERROR):
            assert not store.save()
        assert "Failed to persist counter" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
