"""
Cache-aside access to a key/value store with TTL.

The store is an external, possibly unavailable collaborator.  Reads that
fail are treated as misses and writes that fail are logged and dropped,
so a cache outage only costs duplicate upstream calls.  It never blocks
or fails the computation itself.

Stores:
    InMemoryCacheStore  process-local dict with expiry (default)
    RedisCacheStore     shared Redis instance, values JSON-encoded
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, TypeVar

import redis

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheStore(Protocol):
    """Minimal store contract used by :class:`CacheAside`."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class InMemoryCacheStore:
    """Thread-safe in-process store.  Expired entries are dropped on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (self._clock() + ttl_seconds, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisCacheStore:
    """Redis-backed store.  Values must be JSON-serializable."""

    def __init__(self, client: redis.Redis, prefix: str = "odds_hub:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCacheStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(self.prefix + key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.client.setex(self.prefix + key, ttl_seconds, json.dumps(value))

    def delete(self, key: str) -> None:
        self.client.delete(self.prefix + key)

    def clear(self) -> None:
        keys = list(self.client.scan_iter(match=self.prefix + "*"))
        if keys:
            self.client.delete(*keys)


# ---------------------------------------------------------------------------
# Cache-aside wrapper
# ---------------------------------------------------------------------------

class CacheAside:
    """
    Read-through / write-back wrapper around a :class:`CacheStore`.

    Usage::

        cache = CacheAside(InMemoryCacheStore())
        odds = cache.get_or_compute("odds:bet365:football", 300, fetch_fn)
    """

    def __init__(self, store: CacheStore):
        self.store = store
        self._key_locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._table_lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self.store.get(key)
        except Exception as exc:
            logger.error("Cache read failed for key %s: %s", key, exc)
            return None

    def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        compute_fn: Callable[[], T],
        cache_if: Optional[Callable[[T], bool]] = None,
    ) -> T:
        """
        Return the cached value for ``key`` or compute and store it.

        ``compute_fn`` is called at most once per call.  Errors it raises
        propagate to the caller; store errors never do.

        Args:
            key: Cache key.
            ttl_seconds: Expiry applied when writing back.
            compute_fn: Zero-argument producer called on a miss.
            cache_if: Optional predicate; when it returns False for the
                computed value, the value is returned but not written back.
        """
        cached = self._read(key)
        if cached is not None:
            logger.debug("Cache hit for key: %s", key)
            return cached

        # Concurrent misses on one key wait here; the first computes and
        # the rest re-read its result.
        with self._lock_for(key):
            cached = self._read(key)
            if cached is not None:
                logger.debug("Cache hit for key after wait: %s", key)
                return cached

            logger.debug("Cache miss for key: %s", key)
            value = compute_fn()

            if cache_if is not None and not cache_if(value):
                return value

            try:
                self.store.set(key, value, ttl_seconds)
            except Exception as exc:
                logger.error("Cache write failed for key %s: %s", key, exc)

            return value

    def invalidate(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception as exc:
            logger.error("Cache delete failed for key %s: %s", key, exc)

    def clear(self) -> None:
        try:
            self.store.clear()
            logger.info("Cache cleared")
        except Exception as exc:
            logger.error("Cache clear failed: %s", exc)
