"""Durable store persisted as a single JSON object file."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path

from pypersist.exceptions import StorageError
from pypersist.storage.base import Pair

_logger = logging.getLogger(__name__)


class JsonFileStorage:
    """Store every key in one JSON document on disk.

    Writes go to a sibling ``.tmp`` file and are moved into place with
    :func:`os.replace`, so a batch is either fully on disk or not at all.
    Blocking file I/O runs in a worker thread; calls on one instance are
    serialized with an :class:`asyncio.Lock`.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"Storage file {self._path} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self._path} does not hold a JSON object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _read_many(self, keys: Sequence[str]) -> list[tuple[str, str | None]]:
        data = self._load()
        return [(key, data.get(key)) for key in keys]

    def _update(self, pairs: list[Pair]) -> None:
        data = self._load()
        data.update(pairs)
        self._dump(data)
        _logger.debug("Wrote %d key(s) to %s", len(pairs), self._path)

    def _remove(self, keys: Sequence[str]) -> None:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._dump(data)

    async def multi_get(self, keys: Sequence[str]) -> list[tuple[str, str | None]]:
        async with self._lock:
            return await asyncio.to_thread(self._read_many, list(keys))

    async def multi_set(self, pairs: Iterable[Pair]) -> None:
        batch = list(pairs)
        for key, value in batch:
            if not isinstance(value, str):
                raise TypeError(f"value for {key} must be str, got {type(value).__name__}")
        async with self._lock:
            await asyncio.to_thread(self._update, batch)

    async def multi_remove(self, keys: Sequence[str]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._remove, list(keys))

    async def get_all_keys(self) -> list[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
        return list(data)
