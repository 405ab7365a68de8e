"""History: persisted, bounded log of one-shot command runs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiofiles

from termhub.errors import HistoryPersistError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 200


@runtime_checkable
class HistoryStore(Protocol):
    """Ordered list storage, oldest entry first.

    Callers trim to their maximum before ``write()``.
    """

    async def read(self) -> list[dict[str, Any]]: ...

    async def write(self, entries: list[dict[str, Any]]) -> None: ...

    async def clear(self) -> list[dict[str, Any]]: ...


class JsonHistoryStore:
    """History kept as a single JSON array file.

    A missing file is created empty on first read and a blank file reads as
    empty. Malformed content raises HistoryPersistError, so a corrupt log is
    never overwritten by the next append.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        # Serializes read-modify-write cycles within this process.
        self.lock = asyncio.Lock()

    async def read(self) -> list[dict[str, Any]]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            await self.write([])
            return []
        if not raw.strip():
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Malformed history file %s: %s", self.path, e)
            raise HistoryPersistError(f"Malformed history file {self.path}: {e}") from e
        if not isinstance(parsed, list):
            logger.error("History file %s does not hold a JSON array", self.path)
            raise HistoryPersistError(f"History file {self.path} does not hold a JSON array")
        return parsed

    async def write(self, entries: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(list(entries), indent=2, ensure_ascii=False)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(payload)
        tmp.replace(self.path)

    async def clear(self) -> list[dict[str, Any]]:
        await self.write([])
        return []


class MemoryHistoryStore:
    """Non-persistent store for embedding and tests."""

    def __init__(self, entries: list[dict[str, Any]] | None = None) -> None:
        self.entries: list[dict[str, Any]] = list(entries or [])
        self.lock = asyncio.Lock()

    async def read(self) -> list[dict[str, Any]]:
        return list(self.entries)

    async def write(self, entries: list[dict[str, Any]]) -> None:
        self.entries = list(entries)

    async def clear(self) -> list[dict[str, Any]]:
        self.entries = []
        return []


def trim_history(entries: list[dict[str, Any]], max_entries: int) -> list[dict[str, Any]]:
    """Keep the newest ``max_entries``; oldest are evicted first."""
    if max_entries <= 0:
        return []
    return entries[-max_entries:]


async def append_bounded(
    store: HistoryStore,
    entry: dict[str, Any],
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> list[dict[str, Any]]:
    """Append ``entry`` and persist the trimmed log. Returns the new log."""

    async def _append() -> list[dict[str, Any]]:
        history = await store.read()
        updated = trim_history([*history, entry], max_entries)
        await store.write(updated)
        return updated

    lock: asyncio.Lock | None = getattr(store, "lock", None)
    if lock is None:
        return await _append()
    async with lock:
        return await _append()


__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "HistoryStore",
    "JsonHistoryStore",
    "MemoryHistoryStore",
    "append_bounded",
    "trim_history",
]
