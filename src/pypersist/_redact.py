"""Helpers for safe trace logging.

Application state routinely carries credentials and large blobs.  This
module renders state values for the mediator's trace lines without
dumping them whole.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from typing import Any

# Compared after lower-casing and dropping "_" and "-", so "access_token",
# "accessToken" and "Access-Token" all match.
_SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "password",
        "passphrase",
        "secret",
        "token",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "apikey",
        "privatekey",
    }
)

_MAX_DEPTH = 20


def _normalize(name: object) -> str:
    return str(name).lower().replace("_", "").replace("-", "")


def redact_for_log(value: Any, *, extra_keys: Collection[str] = (), max_string: int = 512) -> Any:
    """Return a redacted copy of *value* suitable for trace logs.

    Mapping entries named like a credential, or listed in *extra_keys*,
    are replaced with ``<redacted>``.  Strings longer than *max_string*
    are cut short.
    """
    hidden = _SENSITIVE_FIELDS | {_normalize(key) for key in extra_keys}
    return _redact(value, hidden, max_string, 0)


def _redact(value: Any, hidden: frozenset[str], max_string: int, depth: int) -> Any:
    if depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>" if _normalize(k) in hidden else _redact(v, hidden, max_string, depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, (Sequence, set, frozenset)):
        return [_redact(v, hidden, max_string, depth + 1) for v in value]

    return repr(value)
