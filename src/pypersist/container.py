"""State-container interface and a minimal reducer-driven implementation.

The mediator only relies on :class:`StateContainer`.  :class:`ReducerStore`
is a small in-process container following the same contract: one root
reducer, synchronous dispatch, and subscribers notified after every
committed action.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from pypersist._constants import INIT_ACTION, REHYDRATE, REPLACE_ACTION
from pypersist.exceptions import PersistError

_logger = logging.getLogger(__name__)

State = dict[str, Any]
Action = Mapping[str, Any]
Reducer = Callable[[State | None, Action], State]
Unsubscribe = Callable[[], None]


class StateContainer(Protocol):
    """Structural interface of the application's state container."""

    def subscribe(self, listener: Callable[[], None]) -> Unsubscribe:
        ...

    def get_state(self) -> Mapping[str, Any]:
        ...

    def dispatch(self, action: Action) -> Any:
        ...

    def replace_reducer(self, reducer: Reducer) -> None:
        ...


def rehydrate_action(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {"type": REHYDRATE, "payload": dict(payload)}


def wrap_reducer(reducer: Reducer) -> Reducer:
    """Return *reducer* extended with ``REHYDRATE`` handling.

    A ``REHYDRATE`` payload is merged over the current state before the
    wrapped reducer sees it, so only the payload's fields are replaced.
    Every other action is delegated unchanged.
    """

    def persisted_reducer(state: State | None, action: Action) -> State:
        if action.get("type") == REHYDRATE:
            merged = {**(state or {}), **(action.get("payload") or {})}
            return reducer(merged, action)
        return reducer(state, action)

    persisted_reducer.__wrapped__ = reducer  # type: ignore[attr-defined]
    return persisted_reducer


class ReducerStore:
    """Synchronous single-reducer state container.

    Usage::

        store = ReducerStore(reducer)
        store.subscribe(lambda: print(store.get_state()))
        store.dispatch({"type": "increment"})
    """

    def __init__(self, reducer: Reducer, initial_state: Mapping[str, Any] | None = None) -> None:
        self._reducer = reducer
        self._state: State | None = dict(initial_state) if initial_state is not None else None
        self._listeners: list[Callable[[], None]] = []
        self._dispatching = False
        self._state = self._reduce({"type": INIT_ACTION})

    def _reduce(self, action: Action) -> State:
        if self._dispatching:
            raise PersistError("Reducers may not dispatch actions")
        self._dispatching = True
        try:
            return self._reducer(self._state, action)
        finally:
            self._dispatching = False

    def get_state(self) -> State:
        return self._state if self._state is not None else {}

    def subscribe(self, listener: Callable[[], None]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> Action:
        if "type" not in action:
            raise PersistError(f"Actions must have a 'type' key: {action!r}")
        self._state = self._reduce(action)
        _logger.debug("Dispatched %s", action["type"])
        for listener in list(self._listeners):
            listener()
        return action

    def replace_reducer(self, reducer: Reducer) -> None:
        """Install a new root reducer and notify subscribers."""
        self._reducer = reducer
        self.dispatch({"type": REPLACE_ACTION})
