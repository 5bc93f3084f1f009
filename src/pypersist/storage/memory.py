"""In-process durable store backed by a dict."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from pypersist.storage.base import Pair


class MemoryStorage:
    """Non-durable store, useful for tests and ephemeral runs."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    @property
    def data(self) -> dict[str, str]:
        return dict(self._data)

    async def multi_get(self, keys: Sequence[str]) -> list[tuple[str, str | None]]:
        return [(key, self._data.get(key)) for key in keys]

    async def multi_set(self, pairs: Iterable[Pair]) -> None:
        batch = list(pairs)
        for key, value in batch:
            if not isinstance(value, str):
                raise TypeError(f"value for {key} must be str, got {type(value).__name__}")
        self._data.update(batch)

    async def multi_remove(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def get_all_keys(self) -> list[str]:
        return list(self._data)
