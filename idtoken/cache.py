"""Key caches used by the key-set fetcher."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from cachetools import TTLCache


class KeyCache(Protocol):
    """Minimal get/put store for resolved signing keys."""

    def get(self, key: str) -> Any | None:
        """Return the cached value or None when absent."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Store a value under key."""
        ...


class NoKeyCache:
    """Cache that never stores anything, so every lookup misses."""

    def get(self, key: str) -> Any | None:
        del key
        return None

    def put(self, key: str, value: Any) -> None:
        del key, value


class TTLKeyCache:
    """Thread-safe bounded cache with per-entry time-to-live."""

    def __init__(
        self,
        maxsize: int = 16,
        ttl_seconds: float = 600,
        timer: Callable[[], float] | None = None,
    ) -> None:
        """Create cache with configurable size, TTL and clock."""
        self._entries: TTLCache[str, Any] = TTLCache(
            maxsize=maxsize, ttl=ttl_seconds, timer=timer or time.monotonic
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the live entry for key, if any."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        """Store value and restart its TTL."""
        with self._lock:
            self._entries[key] = value
