"""Persistence mediator between a state container and a durable store.

On the first state change the mediator restores previously persisted
fields into the container (``REHYDRATE``), and from then on writes every
changed field back to storage.  State changes observed before the
restore finishes are dropped so partially restored state is never
written.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Coroutine, Mapping
from typing import Any

from pypersist._codec import KeyCodec, decode_value, encode_value
from pypersist._constants import LOG_TAG, REHYDRATE
from pypersist._redact import redact_for_log
from pypersist.config import PersistConfig, coerce_config
from pypersist.container import Reducer, StateContainer, rehydrate_action, wrap_reducer
from pypersist.events import EventBus, Listener, PersistEvent
from pypersist.exceptions import (
    PersistError,
    SerializationError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from pypersist.filter import create_key_filter
from pypersist.storage import DurableStore, MemoryStorage, RemovableStore

_logger = logging.getLogger(__name__)


class LifecycleState(enum.IntEnum):
    INIT = 0
    RESTORING = 1
    READY = 2


class Persist:
    """Keeps a filtered subset of container state mirrored in a durable store.

    Use :func:`create_persist` to build and attach one.  Saves and the
    restore run as tasks on the event loop; call :meth:`drain` to wait
    for everything scheduled so far.
    """

    STATE = LifecycleState
    ACTION_TYPE = REHYDRATE

    def __init__(
        self,
        container: StateContainer,
        reducer: Reducer,
        config: PersistConfig | Mapping[str, Any] | None = None,
        *,
        storage: DurableStore | None = None,
        logger: logging.Logger | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._container = container
        self._config = coerce_config(config)
        self._logger = logger or _logger
        self._loop = loop
        if storage is None:
            self._logger.warning("%s no durable storage given, persisting to memory only", LOG_TAG)
            storage = MemoryStorage()
        self._storage = storage
        self._keys = KeyCodec(self._config.prefix)
        self._filter = create_key_filter(self._config, logger=self._logger)
        self._events = EventBus(logger=self._logger)
        self._state = LifecycleState.INIT
        self._restored = False
        self._restored_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()
        self._save_task: asyncio.Task[None] | None = None
        self._queued_state: dict[str, Any] | None = None
        # Values the store has acknowledged; the rollback target for failed writes.
        self._confirmed: dict[str, str] = {}

        self.reducer: Reducer = wrap_reducer(reducer)
        self.last_persisted: dict[str, str] = {}
        self.last_error: PersistError | None = None

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def config(self) -> PersistConfig:
        return self._config

    @property
    def storage(self) -> DurableStore:
        return self._storage

    def attach(self, *, replace_reducer: bool = True) -> None:
        """Subscribe to the container and, by default, install :attr:`reducer`.

        With ``replace_reducer=False`` the caller is expected to have
        built the container with :func:`~pypersist.container.wrap_reducer`.
        """
        self._container.subscribe(self._on_state_change)
        if replace_reducer:
            self._container.replace_reducer(self.reducer)

    def add_event_listener(self, event: PersistEvent | str, fn: Listener) -> None:
        self._events.add(str(event), fn)

    def remove_event_listener(self, event: PersistEvent | str, fn: Listener) -> None:
        self._events.remove(str(event), fn)

    def is_restored(self) -> bool:
        return self._restored

    async def wait_restored(self) -> None:
        await self._restored_event.wait()

    async def drain(self) -> None:
        """Wait for every scheduled save/restore, including ones started meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def purge(self) -> None:
        """Remove every tracked key from storage.

        A key is tracked when it sits under this mediator's prefix and its
        field passes the key filter; other entries sharing the prefix are
        left alone.  The diff baseline is cleared too, so the next state
        change rewrites all tracked fields.
        """
        storage = self._storage
        if not isinstance(storage, RemovableStore):
            raise PersistError(f"{type(storage).__name__} does not support key removal")
        try:
            keys = [key for key in await storage.get_all_keys() if self._tracks(key)]
            if keys:
                await storage.multi_remove(keys)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageWriteError(f"Purge failed: {exc}") from exc
        self.last_persisted.clear()
        self._confirmed.clear()
        self._trace("purged %d key(s)", len(keys))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _trace(self, msg: str, *args: Any) -> None:
        if self._config.log:
            self._logger.info("%s " + msg, LOG_TAG, *args)

    def _tracks(self, encoded_key: str) -> bool:
        return self._keys.owns(encoded_key) and self._filter(self._keys.decode(encoded_key))

    def _for_log(self, key: str, value: Any) -> Any:
        return redact_for_log({key: value}, extra_keys=self._config.redact_keys)[key]

    def _emit(self, event: PersistEvent, payload: Any) -> None:
        self._trace("%s %s", event, redact_for_log(payload, extra_keys=self._config.redact_keys))
        self._events.emit(event, payload)

    def _report(self, error: PersistError) -> None:
        self.last_error = error
        self._logger.error("%s %s", LOG_TAG, error, exc_info=error)
        self._events.emit(PersistEvent.ERROR, error)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                coro.close()
                raise PersistError(
                    "No running event loop; attach the mediator inside a coroutine or pass loop="
                ) from exc
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_state_change(self) -> None:
        state = dict(self._container.get_state())
        self._trace("~~ state change")

        if self._state is LifecycleState.INIT:
            self._spawn(self._restore(state))
            self._state = LifecycleState.RESTORING
        elif self._state is LifecycleState.READY:
            self._request_save(state)
        else:
            self._trace("== not ready to save changes yet")

    def _request_save(self, state: dict[str, Any]) -> None:
        if not self._config.coalesce_saves:
            self._spawn(self._save(state))
            return
        if self._save_task is not None and not self._save_task.done():
            self._queued_state = state
            self._trace("== save in flight, queued latest state")
            return
        self._save_task = self._spawn(self._run_saves(state))

    async def _run_saves(self, state: dict[str, Any]) -> None:
        next_state: dict[str, Any] | None = state
        while next_state is not None:
            await self._save(next_state)
            next_state, self._queued_state = self._queued_state, None

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def _save(self, state: Mapping[str, Any]) -> None:
        self._trace("<< save")
        batch: list[tuple[str, str]] = []
        payload: dict[str, Any] = {}

        # Everything up to the write runs without suspending, so the
        # baseline is updated in notification order.
        for key, value in state.items():
            if not self._filter(key):
                continue
            encoded_key = self._keys.encode(key)
            try:
                encoded_value = encode_value(value, key=key)
            except SerializationError as exc:
                self._report(exc)
                continue

            if self.last_persisted.get(encoded_key) == encoded_value:
                continue
            self.last_persisted[encoded_key] = encoded_value
            batch.append((encoded_key, encoded_value))
            payload[key] = value
            self._trace("save %s %s", key, self._for_log(key, value))

        if not batch:
            return

        try:
            await self._storage.multi_set(batch)
        except Exception as exc:
            error = StorageWriteError(
                f"multi_set of {len(batch)} key(s) failed: {exc}",
                keys=tuple(key for key, _ in batch),
            )
            error.__cause__ = exc
            if self._config.rollback_on_failure:
                self._rollback(batch)
            self._report(error)
            return

        self._confirmed.update(batch)
        self._emit(PersistEvent.SAVE, payload)

    def _rollback(self, batch: list[tuple[str, str]]) -> None:
        for encoded_key, written in batch:
            # A newer save has already moved this key on.
            if self.last_persisted.get(encoded_key) != written:
                continue
            old = self._confirmed.get(encoded_key)
            if old is None:
                self.last_persisted.pop(encoded_key, None)
            else:
                self.last_persisted[encoded_key] = old

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def _restore(self, state: dict[str, Any]) -> None:
        self._trace(">> restore")
        try:
            await self._rehydrate(state)
        except PersistError as exc:
            self._report(exc)
        except Exception as exc:
            error = PersistError(f"Restore failed: {exc}")
            error.__cause__ = exc
            self._report(error)
        finally:
            self._state = LifecycleState.READY
            self._restored = True
            self._restored_event.set()
            self._trace("== ready")

    async def _rehydrate(self, state: dict[str, Any]) -> None:
        keys = [key for key in state if self._filter(key)]
        fields = {self._keys.encode(key): key for key in keys}

        results: list[tuple[str, str | None]] = []
        if fields:
            try:
                results = await self._storage.multi_get(list(fields))
            except Exception as exc:
                error = StorageReadError(
                    f"multi_get of {len(fields)} key(s) failed: {exc}",
                    keys=tuple(fields),
                )
                error.__cause__ = exc
                self._report(error)
                self._adopt_memory_baseline(state, keys)
                self._finish_restore({key: state[key] for key in keys})
                return

        stored: dict[str, Any] = {}
        for encoded_key, encoded_value in results:
            key = fields.get(encoded_key)
            if key is None:
                continue
            try:
                value = decode_value(encoded_value, key=key)
                if value is None:
                    continue
                canonical = encode_value(value, key=key)
            except SerializationError as exc:
                self._report(exc)
                continue
            self._trace("restore %s %s", key, self._for_log(key, value))
            self.last_persisted[encoded_key] = canonical
            self._confirmed[encoded_key] = canonical
            stored[key] = value

        not_stored = {key: state[key] for key in keys if key not in stored}
        if not_stored:
            self._trace(">> save initial values %s", redact_for_log(not_stored, extra_keys=self._config.redact_keys))
            await self._save(not_stored)

        self._finish_restore({key: stored[key] if key in stored else not_stored[key] for key in keys})

    def _adopt_memory_baseline(self, state: Mapping[str, Any], keys: list[str]) -> None:
        # Storage could not be read, so nothing is seeded; only fields that
        # change from here on are written.
        for key in keys:
            try:
                self.last_persisted[self._keys.encode(key)] = encode_value(state[key], key=key)
            except SerializationError as exc:
                self._report(exc)

    def _finish_restore(self, payload: dict[str, Any]) -> None:
        self._container.dispatch(rehydrate_action(payload))
        self._emit(PersistEvent.RESTORE, payload)


def create_persist(
    container: StateContainer,
    reducer: Reducer,
    config: PersistConfig | Mapping[str, Any] | None = None,
    *,
    storage: DurableStore | None = None,
    logger: logging.Logger | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
    replace_reducer: bool = True,
) -> Persist:
    """Create a mediator for *container* and attach it.

    Usage::

        store = ReducerStore(reducer)
        persist = create_persist(store, reducer, {"whitelist": ["settings"]},
                                 storage=JsonFileStorage("state.json"))
        await persist.wait_restored()
    """
    persist = Persist(container, reducer, config, storage=storage, logger=logger, loop=loop)
    persist.attach(replace_reducer=replace_reducer)
    return persist
