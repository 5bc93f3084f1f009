"""pypersist - Persist and rehydrate application state through a durable key-value store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypersist")
except PackageNotFoundError:
    __version__ = "0+local"
from pypersist._constants import DEFAULT_PREFIX, REHYDRATE
from pypersist.config import PersistConfig
from pypersist.container import ReducerStore, StateContainer, rehydrate_action, wrap_reducer
from pypersist.events import EventBus, PersistEvent
from pypersist.exceptions import (
    PersistConfigError,
    PersistError,
    SerializationError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from pypersist.persist import LifecycleState, Persist, create_persist
from pypersist.storage import DurableStore, JsonFileStorage, MemoryStorage

__all__ = [
    "__version__",
    "DEFAULT_PREFIX",
    "DurableStore",
    "EventBus",
    "JsonFileStorage",
    "LifecycleState",
    "MemoryStorage",
    "Persist",
    "PersistConfig",
    "PersistConfigError",
    "PersistError",
    "PersistEvent",
    "REHYDRATE",
    "ReducerStore",
    "SerializationError",
    "StateContainer",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "create_persist",
    "rehydrate_action",
    "wrap_reducer",
]
