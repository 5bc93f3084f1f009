"""Key and value encoding at the durable-store boundary."""

from __future__ import annotations

import json
from typing import Any

from pypersist.exceptions import SerializationError


class KeyCodec:
    """Map field names to storage keys under a fixed namespace prefix."""

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def encode(self, field: str) -> str:
        return f"{self._prefix}{field}"

    def decode(self, key: str) -> str:
        """Strip the prefix as a leading span only.

        Keys outside the namespace are returned unchanged; a field name
        that happens to contain the prefix elsewhere is never altered.
        """
        return key.removeprefix(self._prefix)

    def owns(self, key: str) -> bool:
        return key.startswith(self._prefix)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not valid JSON")


def encode_value(value: Any, *, key: str = "") -> str:
    """Serialize *value* to compact JSON text."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Cannot encode value for {key or 'field'}: {exc}", key=key) from exc


def decode_value(text: str | None, *, key: str = "") -> Any:
    """Parse stored JSON text; a missing entry decodes to ``None``.

    ``NaN`` and ``Infinity`` are rejected, matching :func:`encode_value`.
    """
    if text is None:
        return None
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Stored entry {key or '?'} is not valid JSON: {text[:64]!r}", key=key) from exc
