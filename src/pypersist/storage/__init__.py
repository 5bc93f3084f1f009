"""Durable key-value stores.

The mediator talks to any object implementing :class:`DurableStore`;
the stores here are the bundled implementations.
"""

from pypersist.storage.base import DurableStore, RemovableStore
from pypersist.storage.file import JsonFileStorage
from pypersist.storage.memory import MemoryStorage

__all__ = ["DurableStore", "JsonFileStorage", "MemoryStorage", "RemovableStore"]
