"""Shared counters for rate limits and short-lived locks.

Core logic depends on the CounterStore interface only. RedisCounterStore is
used when REDIS_URL is configured; InMemoryCounterStore serves tests and
single-process deployments.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

import redis

from evidence_engine.config import get_settings

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Atomic counters with expiry."""

    @abstractmethod
    def incr_with_expiry(self, key: str, window_seconds: int) -> int:
        """Increment key and return the new count.

        The expiry is set when the key is created, so the window starts at the
        first increment.
        """
        ...

    @abstractmethod
    def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        """Create key with a TTL. Returns False if it already exists (lock held)."""
        ...


class RedisCounterStore(CounterStore):
    """CounterStore backed by Redis INCR/EXPIRE and SET NX EX."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCounterStore:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def incr_with_expiry(self, key: str, window_seconds: int) -> int:
        pipeline = self._client.pipeline()
        pipeline.incr(key)
        pipeline.ttl(key)
        count, ttl = pipeline.execute()
        if ttl is None or int(ttl) < 0:
            self._client.expire(key, window_seconds)
        return int(count)

    def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._client.set(key, "1", nx=True, ex=ttl_seconds))


class InMemoryCounterStore(CounterStore):
    """Process-local CounterStore. Not shared between worker processes."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._values: dict[str, tuple[int, float]] = {}

    def _live(self, key: str) -> tuple[int, float] | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._values[key]
            return None
        return entry

    def incr_with_expiry(self, key: str, window_seconds: int) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                entry = (0, self._clock() + window_seconds)
            count = entry[0] + 1
            self._values[key] = (count, entry[1])
            return count

    def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._values[key] = (1, self._clock() + ttl_seconds)
            return True


_store: CounterStore | None = None


def get_counter_store() -> CounterStore:
    """Return the process-wide CounterStore for the configured backend."""
    global _store
    if _store is None:
        url = get_settings().redis_url
        if url:
            _store = RedisCounterStore.from_url(url)
            logger.info("Counter store: redis")
        else:
            _store = InMemoryCounterStore()
            logger.info("Counter store: in-memory (REDIS_URL not set)")
    return _store


def clear_counter_store() -> None:
    """Drop the cached store. Useful for testing."""
    global _store
    _store = None
