"""Short-lived in-process cache for file-backed reads.

Cache-aside: callers look up a key, and on a miss compute the value and
store it. Entries expire after a TTL measured with an injectable clock so
expiry can be tested without sleeping.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_TTL = 2.0  # seconds

T = TypeVar("T")

Clock = Callable[[], float]


class TTLCache(Generic[T]):
    """Mapping of key -> (value, stored_at) with per-entry expiry."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Clock | None = None) -> None:
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, tuple[T, float]] = {}

    def get(self, key: str) -> T | None:
        """Return the cached value, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            logger.debug(f"Cache entry expired for {key}")
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
