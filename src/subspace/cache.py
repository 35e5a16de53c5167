"""Thread-safe in-memory cache with per-entry expiration."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

from loguru import logger

DEFAULT_EXPIRATION_SECONDS = 300.0

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """One stored value and the clock reading at which it expires."""

    value: V
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class Cache(Generic[K, V]):
    """
    Key/value store where every entry carries its own time-to-live.

    Expired entries are never returned. They are evicted lazily when `get`
    finds them, or eagerly by `clean_expired`, which owners are expected to
    call on a timer. All operations share one lock.
    """

    def __init__(
        self,
        default_expiration: float = DEFAULT_EXPIRATION_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_expiration <= 0:
            raise ValueError("default_expiration must be positive")
        self.default_expiration = default_expiration
        self._clock = clock
        self._lock = threading.Lock()
        self._storage: dict[K, CacheEntry[V]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._storage)

    def get(self, key: K) -> V | None:
        """Return the value for `key`, or None when missing or expired."""
        with self._lock:
            entry = self._storage.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._storage[key]
                logger.debug("cache.expired key={}", key)
                return None
        logger.debug("cache.hit key={}", key)
        return entry.value

    def set(self, key: K, value: V, expiration: float | None = None) -> None:
        """Insert or replace `key`, expiring after `expiration` seconds."""
        ttl = self.default_expiration if expiration is None else expiration
        with self._lock:
            self._storage[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        logger.debug("cache.set key={} ttl={}", key, ttl)

    def remove(self, key: K) -> None:
        with self._lock:
            self._storage.pop(key, None)
        logger.debug("cache.remove key={}", key)

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()
        logger.info("cache.cleared")

    def clean_expired(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._storage.items() if entry.is_expired(now)]
            for key in expired:
                del self._storage[key]
        if expired:
            logger.info("cache.clean_expired removed={}", len(expired))
        return len(expired)
