"""Mediator configuration for pypersist."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pypersist._constants import DEFAULT_PREFIX
from pypersist.exceptions import PersistConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(part.strip() for part in value.split(",") if part.strip())


class PersistConfig(BaseModel):
    """Mediator configuration.

    Parameters
    ----------
    log : bool
        Emit a trace line for every phase (state change, save, restore)
        through the mediator's logger at ``INFO``.
    prefix : str
        Namespace prepended to every field name to build the storage key.
    whitelist : tuple of str or None
        When set, only these top-level fields are persisted.
    blacklist : tuple of str or None
        When set (and no whitelist is), these fields are never persisted.
    coalesce_saves : bool
        Keep at most one save in flight.  Snapshots arriving meanwhile
        collapse into the latest one, which is saved next.
    rollback_on_failure : bool
        Undo the optimistic baseline update of a failed write so the
        next save retries it.  Off by default: a failed write is not
        retried until the value changes again.
    redact_keys : tuple of str
        Fields whose values are replaced with ``<redacted>`` in trace logs.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
    )

    log: bool = False
    prefix: str = DEFAULT_PREFIX
    whitelist: tuple[str, ...] | None = None
    blacklist: tuple[str, ...] | None = None
    coalesce_saves: bool = False
    rollback_on_failure: bool = False
    redact_keys: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("prefix")
    @classmethod
    def _require_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("prefix must be non-empty")
        return value

    @field_validator("whitelist", "blacklist", "redact_keys", mode="before")
    @classmethod
    def _normalize_keys(cls, value: Any) -> Any:
        if value is None or isinstance(value, tuple):
            return value
        if isinstance(value, str):
            # A bare string would otherwise be split into characters.
            return (value,)
        if isinstance(value, Iterable) and not isinstance(value, Mapping):
            return tuple(value)
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> PersistConfig:
        """Create configuration from environment variables.

        Reads ``PYPERSIST_LOG``, ``PYPERSIST_PREFIX``,
        ``PYPERSIST_WHITELIST`` / ``PYPERSIST_BLACKLIST`` (comma
        separated), ``PYPERSIST_COALESCE_SAVES`` and
        ``PYPERSIST_ROLLBACK_ON_FAILURE``.  Explicit keyword arguments
        override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        if "log" not in overrides:
            config_kwargs["log"] = _env_bool(env.get("PYPERSIST_LOG"), False)

        prefix = env.get("PYPERSIST_PREFIX")
        if prefix is not None:
            config_kwargs["prefix"] = prefix

        for env_key, field_name in (
            ("PYPERSIST_WHITELIST", "whitelist"),
            ("PYPERSIST_BLACKLIST", "blacklist"),
        ):
            keys = _env_list(env.get(env_key))
            if keys is not None:
                config_kwargs[field_name] = keys

        if "coalesce_saves" not in overrides:
            config_kwargs["coalesce_saves"] = _env_bool(env.get("PYPERSIST_COALESCE_SAVES"), False)
        if "rollback_on_failure" not in overrides:
            config_kwargs["rollback_on_failure"] = _env_bool(
                env.get("PYPERSIST_ROLLBACK_ON_FAILURE"),
                False,
            )

        config_kwargs.update(overrides)
        return coerce_config(config_kwargs)


def coerce_config(config: PersistConfig | Mapping[str, Any] | None) -> PersistConfig:
    """Accept a config model, a plain mapping of options, or ``None``."""
    if config is None:
        return PersistConfig()
    if isinstance(config, PersistConfig):
        return config
    try:
        return PersistConfig.model_validate(dict(config))
    except ValidationError as exc:
        raise PersistConfigError(f"Invalid persist configuration: {exc}") from exc
