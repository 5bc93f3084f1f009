"""Custom exception hierarchy for pypersist."""

from __future__ import annotations


class PersistError(Exception):
    """Base exception for all pypersist errors."""


class PersistConfigError(PersistError):
    """Invalid or contradictory configuration."""


class StorageError(PersistError):
    """Durable store call failed."""

    def __init__(
        self,
        message: str,
        *,
        keys: tuple[str, ...] = (),
    ) -> None:
        self.keys = keys
        super().__init__(message)


class StorageReadError(StorageError):
    """Batched read (``multi_get``) rejected."""


class StorageWriteError(StorageError):
    """Batched write (``multi_set``) rejected.

    The mediator has usually already recorded the values as persisted
    when this is raised, so they will not be retried unless they change
    again (see ``PersistConfig.rollback_on_failure``).
    """


class SerializationError(PersistError):
    """A value could not be encoded, or a stored entry could not be decoded."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)
