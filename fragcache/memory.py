"""Session-scoped in-memory tier for fragment cache entries."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable

from .models import ALL_MODES, CacheEntry, CacheKey, ParsingMode

logger = logging.getLogger(__name__)


class MemoryTier:
    """One map per parsing mode from ``CacheKey`` to ``CacheEntry``.

    The tier is a non-owning copy of what the persistent store holds. It is
    filled lazily by the orchestrator and never consulted for keys other than
    the exact one being looked up.
    """

    def __init__(self) -> None:
        self._maps: dict[ParsingMode, dict[CacheKey, CacheEntry]] = {
            mode: {} for mode in ALL_MODES
        }
        self._lock = Lock()

    def get(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            return self._maps[key.mode].get(key)

    def set(self, entry: CacheEntry) -> None:
        with self._lock:
            self._maps[entry.key.mode][entry.key] = entry

    def update(self, entries: Iterable[CacheEntry]) -> int:
        added = 0
        with self._lock:
            for entry in entries:
                self._maps[entry.key.mode][entry.key] = entry
                added += 1
        return added

    def clear(self, modes: Iterable[ParsingMode] = ALL_MODES) -> int:
        removed = 0
        with self._lock:
            for mode in modes:
                removed += len(self._maps[mode])
                self._maps[mode].clear()
        logger.debug("Memory tier cleared (%d entries)", removed)
        return removed

    def count(self, mode: ParsingMode | None = None) -> int:
        with self._lock:
            if mode is not None:
                return len(self._maps[mode])
            return sum(len(values) for values in self._maps.values())

    def is_empty(self) -> bool:
        return self.count() == 0
