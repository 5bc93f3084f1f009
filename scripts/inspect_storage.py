#!/usr/bin/env python3
"""Inspect or purge a pypersist JSON storage file.

Usage
-----
::

    python scripts/inspect_storage.py state.json
    python scripts/inspect_storage.py state.json --prefix "myApp:" --field settings
    python scripts/inspect_storage.py state.json --purge

Options::

    --prefix P        Key namespace to inspect (default: reduxPersist:)
    --field NAME      Only show this field (repeatable)
    --purge           Remove every key under the prefix
    --verbose / -v    Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pypersist import DEFAULT_PREFIX, JsonFileStorage, SerializationError  # noqa: E402
from pypersist._codec import KeyCodec, decode_value  # noqa: E402

MAX_VAL_WIDTH = 80


def _truncate(val: str, width: int = MAX_VAL_WIDTH) -> str:
    if len(val) <= width:
        return val
    return val[: width - 3] + "..."


async def _dump(storage: JsonFileStorage, codec: KeyCodec, fields: list[str]) -> int:
    keys = [key for key in await storage.get_all_keys() if codec.owns(key)]
    if fields:
        wanted = {codec.encode(name) for name in fields}
        keys = [key for key in keys if key in wanted]
    if not keys:
        print(f"No keys under prefix {codec.prefix!r} in {storage.path}")
        return 0

    width = max(len(codec.decode(key)) for key in keys)
    for key, raw in await storage.multi_get(sorted(keys)):
        name = codec.decode(key)
        try:
            value: Any = decode_value(raw, key=name)
            shown = json.dumps(value, ensure_ascii=False)
        except SerializationError:
            shown = f"<corrupt> {raw!r}"
        print(f"  {name:<{width}}  {_truncate(shown)}")
    print(f"\n{len(keys)} key(s)")
    return 0


async def _purge(storage: JsonFileStorage, codec: KeyCodec) -> int:
    keys = [key for key in await storage.get_all_keys() if codec.owns(key)]
    if keys:
        await storage.multi_remove(keys)
    print(f"Removed {len(keys)} key(s) from {storage.path}")
    return 0


async def _main(args: argparse.Namespace) -> int:
    path = Path(args.path)
    if not path.exists():
        print(f"Storage file not found: {path}", file=sys.stderr)
        return 1
    storage = JsonFileStorage(path)
    codec = KeyCodec(args.prefix)
    if args.purge:
        return await _purge(storage, codec)
    return await _dump(storage, codec, args.field or [])


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect a pypersist JSON storage file")
    parser.add_argument("path", help="Storage file written by JsonFileStorage")
    parser.add_argument("--prefix", default=DEFAULT_PREFIX, help="Key namespace prefix")
    parser.add_argument("--field", action="append", help="Only show this field (repeatable)")
    parser.add_argument("--purge", action="store_true", help="Remove every key under the prefix")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
