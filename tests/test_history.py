"""Tests for termhub.history (stores and bounded append)."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from termhub.errors import HistoryPersistError
from termhub.history import (
    DEFAULT_MAX_ENTRIES,
    HistoryStore,
    JsonHistoryStore,
    MemoryHistoryStore,
    append_bounded,
    trim_history,
)


def entry(i: int) -> dict:
    return {"id": str(i), "command": f"echo {i}"}


# ---------------------------------------------------------------------------
# trim_history / append_bounded
# ---------------------------------------------------------------------------


class TestTrimHistory:
    def test_under_limit(self) -> None:
        entries = [entry(i) for i in range(3)]
        assert trim_history(entries, 5) == entries

    def test_keeps_newest(self) -> None:
        entries = [entry(i) for i in range(5)]
        assert trim_history(entries, 2) == [entry(3), entry(4)]

    def test_zero(self) -> None:
        assert trim_history([entry(0)], 0) == []


class TestAppendBounded:
    async def test_never_exceeds_max(self) -> None:
        store = MemoryHistoryStore()
        for i in range(DEFAULT_MAX_ENTRIES + 25):
            await append_bounded(store, entry(i))
            assert len(store.entries) <= DEFAULT_MAX_ENTRIES

    async def test_fifo_eviction(self) -> None:
        store = MemoryHistoryStore()
        for i in range(DEFAULT_MAX_ENTRIES):
            await append_bounded(store, entry(i))
        assert store.entries[0] == entry(0)

        updated = await append_bounded(store, entry(DEFAULT_MAX_ENTRIES))
        assert len(updated) == DEFAULT_MAX_ENTRIES
        assert updated[0] == entry(1)
        assert updated[-1] == entry(DEFAULT_MAX_ENTRIES)
        assert store.entries == updated

    async def test_concurrent_appends(self) -> None:
        store = MemoryHistoryStore()
        await asyncio.gather(*(append_bounded(store, entry(i), 100) for i in range(20)))
        assert sorted(int(e["id"]) for e in store.entries) == list(range(20))

    async def test_store_without_lock(self) -> None:
        class Plain:
            def __init__(self) -> None:
                self.data: list[dict] = []

            async def read(self) -> list[dict]:
                return list(self.data)

            async def write(self, entries: list[dict]) -> None:
                self.data = list(entries)

            async def clear(self) -> list[dict]:
                self.data = []
                return []

        store = Plain()
        assert isinstance(store, HistoryStore)
        await append_bounded(store, entry(1), 1)
        await append_bounded(store, entry(2), 1)
        assert store.data == [entry(2)]


# ---------------------------------------------------------------------------
# JsonHistoryStore
# ---------------------------------------------------------------------------


class TestJsonHistoryStore:
    async def test_missing_file_created_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "history.json"
        store = JsonHistoryStore(path)
        assert await store.read() == []
        assert json.loads(path.read_text()) == []

    async def test_write_then_read(self, tmp_path: Path) -> None:
        store = JsonHistoryStore(tmp_path / "h.json")
        await store.write([entry(1), entry(2)])
        assert await store.read() == [entry(1), entry(2)]
        assert not (tmp_path / "h.json.tmp").exists()

    async def test_malformed_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        path.write_text("{not json")
        with pytest.raises(HistoryPersistError, match="Malformed"):
            await JsonHistoryStore(path).read()

    async def test_non_list_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        path.write_text('{"entries": []}')
        with pytest.raises(HistoryPersistError, match="JSON array"):
            await JsonHistoryStore(path).read()

    async def test_append_leaves_corrupt_file_untouched(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        corrupt = '[{"id": "a"},]'
        path.write_text(corrupt)
        with pytest.raises(HistoryPersistError):
            await append_bounded(JsonHistoryStore(path), entry(1))
        assert path.read_text() == corrupt

    async def test_blank_file_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        path.write_text("  \n")
        assert await JsonHistoryStore(path).read() == []

    async def test_clear(self, tmp_path: Path) -> None:
        store = JsonHistoryStore(tmp_path / "h.json")
        await store.write([entry(1)])
        assert await store.clear() == []
        assert await store.read() == []

    async def test_append_bounded_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "h.json"
        store = JsonHistoryStore(path)
        for i in range(5):
            await append_bounded(store, entry(i), 3)
        assert json.loads(path.read_text()) == [entry(2), entry(3), entry(4)]

    async def test_unicode_preserved(self, tmp_path: Path) -> None:
        store = JsonHistoryStore(tmp_path / "h.json")
        await store.write([{"stdout": "█░ … ⚠️"}])
        assert (await store.read())[0]["stdout"] == "█░ … ⚠️"
