from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from pypersist.container import Reducer, ReducerStore


@dataclass
class RecordingStorage:
    """Durable store double that records every batched call.

    ``read_gate`` / ``write_gate`` hold the corresponding call until set.
    """

    data: dict[str, str] = field(default_factory=dict)
    get_calls: list[list[str]] = field(default_factory=list)
    set_calls: list[list[tuple[str, str]]] = field(default_factory=list)
    fail_get: bool = False
    fail_set: bool = False
    read_gate: asyncio.Event | None = None
    write_gate: asyncio.Event | None = None

    async def multi_get(self, keys: Sequence[str]) -> list[tuple[str, str | None]]:
        self.get_calls.append(list(keys))
        if self.read_gate is not None:
            await self.read_gate.wait()
        if self.fail_get:
            raise OSError("storage unavailable")
        return [(key, self.data.get(key)) for key in keys]

    async def multi_set(self, pairs: Iterable[tuple[str, str]]) -> None:
        batch = list(pairs)
        self.set_calls.append(batch)
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_set:
            raise OSError("disk full")
        self.data.update(batch)

    def touched_keys(self) -> set[str]:
        keys = {key for call in self.get_calls for key in call}
        keys.update(key for call in self.set_calls for key, _ in call)
        return keys


def make_reducer(initial: dict[str, Any]) -> Reducer:
    """Reducer handling ``set`` (one field) and ``touch`` (new dict, same values)."""

    def reducer(state: dict[str, Any] | None, action: Any) -> dict[str, Any]:
        if state is None:
            state = dict(initial)
        if action["type"] == "set":
            return {**state, action["key"]: action["value"]}
        if action["type"] == "touch":
            return dict(state)
        return state

    return reducer


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def make_store() -> Callable[[dict[str, Any]], tuple[ReducerStore, Reducer]]:
    def factory(initial: dict[str, Any]) -> tuple[ReducerStore, Reducer]:
        reducer = make_reducer(initial)
        return ReducerStore(reducer), reducer

    return factory
