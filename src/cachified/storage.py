"""
Storage backends and the cache entry model.

Provides CacheMetadata/CacheEntry, the CacheStorage protocol, InMemCache
(in-memory), RedisCache and AsyncRedisCache. Backends store entries as given:
expiry is decided by the engine, not by the storage.
"""

from __future__ import annotations

import pickle
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Generic, Protocol, TypeVar

try:
    import redis
except ImportError:
    redis = None  # type: ignore

from .errors import CacheError

T = TypeVar("T")


def current_time() -> float:
    """Seconds since the epoch."""
    return time.time()


# ============================================================================
# Cache Entry - Persisted unit
# ============================================================================


@dataclass(frozen=True)
class CacheMetadata:
    """Creation time and optional TTL of a stored value (both in seconds)."""

    created_time: float
    ttl: float | None = None

    @classmethod
    def now(cls, ttl: float | None = None) -> CacheMetadata:
        return cls(created_time=current_time(), ttl=ttl)

    def is_expired(self, now: float) -> bool:
        """Expired once now reaches created_time + ttl. No TTL never expires."""
        if self.ttl is None:
            return False
        return now >= self.created_time + self.ttl

    @property
    def expires_at(self) -> float | None:
        if self.ttl is None:
            return None
        return self.created_time + self.ttl

    def age(self, now: float) -> float:
        return max(0.0, now - self.created_time)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A stored value plus its metadata."""

    value: T
    metadata: CacheMetadata

    @classmethod
    def new(cls, value: T, ttl: float | None = None) -> CacheEntry[T]:
        """Build an entry stamped with the current time."""
        return cls(value=value, metadata=CacheMetadata.now(ttl))

    def is_expired(self, now: float) -> bool:
        return self.metadata.is_expired(now)

    @property
    def expires_at(self) -> float | None:
        return self.metadata.expires_at

    def age(self, now: float) -> float:
        return self.metadata.age(now)

    def with_metadata(self, **changes: Any) -> CacheEntry[T]:
        """Copy of this entry with some metadata fields replaced."""
        return CacheEntry(value=self.value, metadata=replace(self.metadata, **changes))


# ============================================================================
# Storage Protocol - Common interface for all backends
# ============================================================================


class CacheStorage(Protocol):
    """
    Protocol for cache storage backends.

    Any object with these methods can back the engine, the decorators and
    soft purge. Entries go in and come out whole; a backend must not hide
    expired entries, since stale-while-revalidate and fallback-to-cache
    read them.

    Example:
        class MyCache:
            def get(self, key: str) -> CacheEntry | None: ...
            def set(self, key: str, entry: CacheEntry) -> None: ...
            # ... implement remove, clear, count
    """

    def get(self, key: str) -> CacheEntry | None:
        """Get the entry stored under key, or None."""
        ...

    def set(self, key: str, entry: CacheEntry) -> None:
        """Store entry under key. Raises CacheError on failure."""
        ...

    def remove(self, key: str) -> None:
        """Remove key (hard purge)."""
        ...

    def clear(self) -> None:
        """Remove every entry."""
        ...

    def count(self) -> int:
        """Number of stored entries."""
        ...


def validate_cache_storage(cache: Any) -> bool:
    """
    Validate that an object implements the CacheStorage protocol.
    Useful for debugging custom cache implementations.

    Returns:
        True if valid, False otherwise
    """
    required_methods = ["get", "set", "remove", "clear", "count"]
    return all(
        hasattr(cache, method) and callable(getattr(cache, method))
        for method in required_methods
    )


# ============================================================================
# InMemCache - In-memory storage
# ============================================================================


class InMemCache:
    """
    Thread-safe in-memory entry store.

    Attributes:
        _data: internal entry map
        _lock: re-entrant lock to protect concurrent access
    """

    def __init__(self):
        self._data: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._data[key] = entry

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        """Clear all cached data."""
        with self._lock:
            self._data.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._data)

    def __len__(self) -> int:
        return self.count()

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns count of removed entries."""
        with self._lock:
            now = current_time()
            expired_keys = [
                key for key, entry in self._data.items() if entry.is_expired(now)
            ]
            for key in expired_keys:
                del self._data[key]
            return len(expired_keys)

    @property
    def lock(self):
        """Get the internal lock (for advanced usage)."""
        return self._lock


# ============================================================================
# RedisCache - Redis-backed storage
# ============================================================================


def _redis_expiry(entry: CacheEntry, stale_grace: float | None) -> int | None:
    """Redis-level expiry in milliseconds, or None to keep the key."""
    ttl = entry.metadata.ttl
    if stale_grace is None or ttl is None or ttl <= 0:
        return None
    return int((ttl + stale_grace) * 1000)


class RedisCache:
    """
    Redis-backed entry store.
    Entries are pickled under prefix + key.

    Example:
        import redis
        client = redis.Redis(host='localhost', port=6379)
        cache = RedisCache(client, prefix="app:")
        cache.set("user:123", CacheEntry.new({"name": "John"}, ttl=60))
    """

    def __init__(
        self,
        redis_client: Any,
        prefix: str = "cachified:",
        stale_grace: float | None = None,
    ):
        """
        Initialize Redis cache.

        Args:
            redis_client: Redis client instance
            prefix: Key prefix for namespacing
            stale_grace: Seconds to keep an entry in Redis past its TTL.
                None keeps keys until removed.
        """
        if redis is None:
            raise ImportError("redis package required. Install: pip install redis")
        self.client = redis_client
        self.prefix = prefix
        self.stale_grace = stale_grace

    def _make_key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self.prefix}{key}"

    def get(self, key: str) -> CacheEntry | None:
        try:
            data = self.client.get(self._make_key(key))
            if data is None:
                return None
            return pickle.loads(data)
        except Exception:
            return None

    def set(self, key: str, entry: CacheEntry) -> None:
        try:
            data = pickle.dumps(entry)
            self.client.set(
                self._make_key(key), data, px=_redis_expiry(entry, self.stale_grace)
            )
        except Exception as e:
            raise CacheError(f"Redis set failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.client.delete(self._make_key(key))
        except Exception:
            pass

    def clear(self) -> None:
        keys = list(self.client.scan_iter(match=f"{self.prefix}*"))
        if keys:
            self.client.delete(*keys)

    def count(self) -> int:
        return sum(1 for _ in self.client.scan_iter(match=f"{self.prefix}*"))


class AsyncRedisCache:
    """
    RedisCache for redis.asyncio clients. Coroutine methods, same semantics.

    Example:
        import redis.asyncio
        cache = AsyncRedisCache(redis.asyncio.Redis(), prefix="app:")
    """

    def __init__(
        self,
        redis_client: Any,
        prefix: str = "cachified:",
        stale_grace: float | None = None,
    ):
        if redis is None:
            raise ImportError("redis package required. Install: pip install redis")
        self.client = redis_client
        self.prefix = prefix
        self.stale_grace = stale_grace

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> CacheEntry | None:
        try:
            data = await self.client.get(self._make_key(key))
            if data is None:
                return None
            return pickle.loads(data)
        except Exception:
            return None

    async def set(self, key: str, entry: CacheEntry) -> None:
        try:
            data = pickle.dumps(entry)
            await self.client.set(
                self._make_key(key), data, px=_redis_expiry(entry, self.stale_grace)
            )
        except Exception as e:
            raise CacheError(f"Redis set failed: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            await self.client.delete(self._make_key(key))
        except Exception:
            pass

    async def clear(self) -> None:
        keys = [key async for key in self.client.scan_iter(match=f"{self.prefix}*")]
        if keys:
            await self.client.delete(*keys)

    async def count(self) -> int:
        total = 0
        async for _ in self.client.scan_iter(match=f"{self.prefix}*"):
            total += 1
        return total
