"""Durable key-value store interface."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

Pair = tuple[str, str]


class DurableStore(Protocol):
    """Batched string → string store.

    Each call is expected to be atomic on its own; the mediator does no
    locking around them.  Having a protocol here makes it easy to pass
    test doubles while keeping the bundled stores concrete.
    """

    async def multi_get(self, keys: Sequence[str]) -> list[tuple[str, str | None]]:
        ...

    async def multi_set(self, pairs: Iterable[Pair]) -> None:
        ...


@runtime_checkable
class RemovableStore(Protocol):
    async def multi_remove(self, keys: Sequence[str]) -> None:
        ...

    async def get_all_keys(self) -> list[str]:
        ...
