"""Key filter deciding which top-level fields participate in persistence."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pypersist.config import PersistConfig

KeyFilter = Callable[[str], bool]


def create_key_filter(config: PersistConfig, *, logger: logging.Logger | None = None) -> KeyFilter:
    """Build the predicate once from *config*.

    Whitelist wins over blacklist when both are set.
    """
    if config.whitelist is not None:
        if config.blacklist is not None and logger is not None:
            logger.warning("Both whitelist and blacklist configured; ignoring blacklist")
        allowed = frozenset(config.whitelist)
        return lambda key: key in allowed

    if config.blacklist is not None:
        denied = frozenset(config.blacklist)
        return lambda key: key not in denied

    return lambda _key: True
