"""Listener registry for mediator events.

Listeners are plain callables taking the event payload.  They run
synchronously, in registration order, and in isolation from each other:
one raising does not stop the rest, nor the mediator itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

_logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class PersistEvent(StrEnum):
    SAVE = "save"
    RESTORE = "restore"
    ERROR = "error"


class EventBus:
    """Ordered, identity-deduplicated listeners per event name."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger
        self._handlers: dict[str, list[Listener]] = {}

    def add(self, event: str, fn: Listener) -> None:
        """Register *fn*; re-adding the same callable moves it to the end."""
        handlers = [h for h in self._handlers.get(event, []) if h is not fn]
        handlers.append(fn)
        self._handlers[event] = handlers

    def remove(self, event: str, fn: Listener) -> None:
        handlers = self._handlers.get(event)
        if handlers is None:
            return
        remaining = [h for h in handlers if h is not fn]
        if remaining:
            self._handlers[event] = remaining
        else:
            del self._handlers[event]

    def listeners(self, event: str) -> tuple[Listener, ...]:
        return tuple(self._handlers.get(event, ()))

    def emit(self, event: str, payload: Any) -> None:
        # Snapshot so listeners may add/remove during emission.
        for fn in self.listeners(event):
            try:
                fn(payload)
            except Exception:
                self._logger.error("Listener %r for %s event failed", fn, event, exc_info=True)
