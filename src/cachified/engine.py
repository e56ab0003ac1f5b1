"""
Freshness decision engine, background refresh and soft purge.

Provides:
- cachified / acachified: serve cached, serve stale and refresh, or compute fresh
- spawn_refresh / aspawn_refresh: detached background recomputation
- soft_purge / asoft_purge: mark an entry stale in place
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from functools import partial
from typing import Any, Callable, TypeVar

from .errors import CacheError, CachifiedError, FreshValueError, ValidationError
from .options import CachifiedOptions, SoftPurgeOptions
from .storage import CacheEntry, CacheMetadata, CacheStorage, current_time
from .validation import CheckValue

logger = logging.getLogger(__name__)

T = TypeVar("T")

FRESH = "fresh"
STALE = "stale"
EXPIRED = "expired"
MISS = "miss"


# ============================================================================
# Decision helpers
# ============================================================================


def classify(
    entry: CacheEntry | None, now: float, stale_while_revalidate: float | None
) -> str:
    """
    Classify a stored entry at time now.

    Returns MISS, FRESH, STALE (expired but inside the SWR window) or EXPIRED.
    """
    if entry is None:
        return MISS
    if not entry.is_expired(now):
        return FRESH
    if stale_while_revalidate is None:
        return EXPIRED
    metadata = entry.metadata
    stale_until = metadata.created_time + (metadata.ttl or 0.0) + stale_while_revalidate
    if now < stale_until:
        return STALE
    return EXPIRED


def _is_valid(check_value: CheckValue | None, value: Any) -> bool:
    if check_value is None:
        return True
    try:
        check_value.check(value)
    except Exception as e:
        logger.debug(f"Cached value rejected: {e}")
        return False
    return True


def _validate_fresh(check_value: CheckValue | None, value: Any) -> None:
    if check_value is None:
        return
    try:
        check_value.check(value)
    except ValidationError:
        raise
    except Exception as e:
        raise ValidationError(str(e)) from e


def _new_entry(value: Any, now: float, ttl: float | None) -> CacheEntry:
    return CacheEntry(value=value, metadata=CacheMetadata(created_time=now, ttl=ttl))


def _should_persist(ttl: float | None) -> bool:
    return ttl is not None and ttl > 0


async def _resolve(result: Any) -> Any:
    """Await result if it is awaitable (async storages and producers)."""
    if inspect.isawaitable(result):
        return await result
    return result


async def _call_producer(producer: Callable[[], Any]) -> Any:
    """Await a coroutine producer; run any other producer on a worker thread."""
    if inspect.iscoroutinefunction(producer):
        return await producer()
    return await _resolve(await asyncio.to_thread(producer))


def _require_sync(result: Any, cache: Any) -> Any:
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        raise TypeError(
            f"{type(cache).__name__} is asynchronous, use acachified() or asoft_purge()"
        )
    return result


# ============================================================================
# Background Refresh Coordinator
# ============================================================================


class _InFlightRefreshes:
    """Process-wide set of (storage id, key) pairs with a refresh running."""

    def __init__(self):
        self._markers: set[tuple[int, str]] = set()
        self._lock = threading.Lock()

    def acquire(self, marker: tuple[int, str]) -> bool:
        with self._lock:
            if marker in self._markers:
                return False
            self._markers.add(marker)
            return True

    def release(self, marker: tuple[int, str]) -> None:
        with self._lock:
            self._markers.discard(marker)

    def __contains__(self, marker: tuple[int, str]) -> bool:
        with self._lock:
            return marker in self._markers


_in_flight = _InFlightRefreshes()

# Strong references to running refresh tasks so they are not garbage collected
_background_tasks: set[asyncio.Task] = set()


def spawn_refresh(
    cache: CacheStorage,
    key: str,
    producer: Callable[[], T],
    ttl: float | None,
    on_done: Callable[[], None] | None = None,
) -> threading.Thread:
    """
    Recompute key on a daemon thread and write it back.

    The result is written unconditionally on success (no validation, last
    writer wins). Failures are logged and dropped. Returns the started thread.
    """

    def refresh_job():
        try:
            value = producer()
            cache.set(key, _new_entry(value, current_time(), ttl))
            logger.debug(f"Background refresh complete: {key}")
        except Exception as e:
            logger.warning(f"Background refresh failed for {key}: {e}")
        finally:
            if on_done is not None:
                on_done()

    thread = threading.Thread(
        target=refresh_job, name=f"cachified-refresh:{key}", daemon=True
    )
    thread.start()
    return thread


def aspawn_refresh(
    cache: Any,
    key: str,
    producer: Callable[[], Any],
    ttl: float | None,
    on_done: Callable[[], None] | None = None,
) -> asyncio.Task:
    """
    Recompute key in a detached task on the running loop and write it back.

    The task is not tied to the caller: cancelling the caller leaves it
    running. Returns the task.
    """

    async def refresh_job():
        try:
            value = await _call_producer(producer)
            await _resolve(cache.set(key, _new_entry(value, current_time(), ttl)))
            logger.debug(f"Background refresh complete: {key}")
        except Exception as e:
            logger.warning(f"Background refresh failed for {key}: {e}")
        finally:
            if on_done is not None:
                on_done()

    task = asyncio.get_running_loop().create_task(refresh_job())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def _dispatch_refresh(options: CachifiedOptions, spawn: Callable[..., Any]) -> None:
    on_done = None
    if options.dedupe_refresh:
        marker = (id(options.cache), options.key)
        if not _in_flight.acquire(marker):
            logger.debug(f"Refresh already in flight: {options.key}")
            return
        on_done = partial(_in_flight.release, marker)
    try:
        spawn(
            options.cache,
            options.key,
            options.get_fresh_value,
            options.ttl,
            on_done=on_done,
        )
    except Exception:
        if on_done is not None:
            on_done()
        raise


# ============================================================================
# Freshness Decision Engine
# ============================================================================


def _read_entry(cache: CacheStorage, key: str) -> CacheEntry | None:
    try:
        entry = cache.get(key)
    except Exception as e:
        logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
        return None
    return _require_sync(entry, cache)


async def _aread_entry(cache: Any, key: str) -> CacheEntry | None:
    try:
        return await _resolve(cache.get(key))
    except Exception as e:
        logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
        return None


def cachified(options: CachifiedOptions) -> Any:
    """
    Return the value for options.key, from cache when possible.

    Fresh entries are served as is. Expired entries inside the
    stale-while-revalidate window are served while a background thread
    refreshes them. Anything else calls the producer, validates and
    persists its result.

    Raises:
        ValidationError: the fresh value was rejected by the validator.
        FreshValueError: the producer failed and no fallback applied.
        TypeError: the storage has coroutine methods (use acachified).

    Example:
        value = cachified(
            CachifiedOptionsBuilder(cache, "user:1")
            .ttl(300)
            .get_fresh_value(lambda: db.fetch_user(1))
        )
    """
    cache, key, check_value = options.cache, options.key, options.check_value
    now = current_time()

    if options.force_fresh:
        logger.debug(f"Cache BYPASS (force_fresh): {key}")
    else:
        entry = _read_entry(cache, key)
        state = classify(entry, now, options.stale_while_revalidate)

        if state == FRESH:
            if _is_valid(check_value, entry.value):
                logger.debug(f"Cache HIT (fresh): {key}")
                return entry.value
            logger.debug(f"Cache HIT (invalid): {key}, recomputing")
        elif state == STALE:
            logger.debug(f"Cache HIT (stale): {key}, refreshing in background")
            _dispatch_refresh(options, spawn_refresh)
            if _is_valid(check_value, entry.value):
                return entry.value
        elif state == EXPIRED:
            logger.debug(f"Cache HIT (expired): {key}, age={entry.age(now):.3f}s")
        else:
            logger.debug(f"Cache MISS: {key}")

    try:
        value = options.get_fresh_value()
    except Exception as e:
        if options.fallback_to_cache:
            entry = _read_entry(cache, key)
            if entry is not None and _is_valid(check_value, entry.value):
                logger.warning(f"Fresh value failed for {key}, serving cached: {e}")
                return entry.value
        if isinstance(e, CachifiedError):
            raise
        raise FreshValueError(f"{key}: {e}") from e

    _validate_fresh(check_value, value)

    if _should_persist(options.ttl):
        try:
            written = cache.set(key, _new_entry(value, now, options.ttl))
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        else:
            _require_sync(written, cache)

    return value


async def acachified(options: CachifiedOptions) -> Any:
    """
    Asyncio flavor of cachified().

    The producer may return an awaitable; storage methods may be coroutine
    functions. Producers that are not coroutine functions run on a worker
    thread so they never block the loop. Background refreshes run as
    detached tasks on the running loop.
    """
    cache, key, check_value = options.cache, options.key, options.check_value
    now = current_time()

    if options.force_fresh:
        logger.debug(f"Cache BYPASS (force_fresh): {key}")
    else:
        entry = await _aread_entry(cache, key)
        state = classify(entry, now, options.stale_while_revalidate)

        if state == FRESH:
            if _is_valid(check_value, entry.value):
                logger.debug(f"Cache HIT (fresh): {key}")
                return entry.value
            logger.debug(f"Cache HIT (invalid): {key}, recomputing")
        elif state == STALE:
            logger.debug(f"Cache HIT (stale): {key}, refreshing in background")
            _dispatch_refresh(options, aspawn_refresh)
            if _is_valid(check_value, entry.value):
                return entry.value
        elif state == EXPIRED:
            logger.debug(f"Cache HIT (expired): {key}, age={entry.age(now):.3f}s")
        else:
            logger.debug(f"Cache MISS: {key}")

    try:
        value = await _call_producer(options.get_fresh_value)
    except Exception as e:
        if options.fallback_to_cache:
            entry = await _aread_entry(cache, key)
            if entry is not None and _is_valid(check_value, entry.value):
                logger.warning(f"Fresh value failed for {key}, serving cached: {e}")
                return entry.value
        if isinstance(e, CachifiedError):
            raise
        raise FreshValueError(f"{key}: {e}") from e

    _validate_fresh(check_value, value)

    if _should_persist(options.ttl):
        try:
            await _resolve(cache.set(key, _new_entry(value, now, options.ttl)))
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    return value


# ============================================================================
# Soft Purge
# ============================================================================


def _soft_purged(entry: CacheEntry, now: float) -> CacheEntry:
    """
    Force entry stale (ttl=0). An entry that had already expired is re-based
    to now so its SWR window starts at the purge.
    """
    if entry.is_expired(now):
        return entry.with_metadata(ttl=0.0, created_time=now)
    return entry.with_metadata(ttl=0.0)


def _purge_options(options: SoftPurgeOptions | str) -> SoftPurgeOptions:
    if isinstance(options, str):
        options = SoftPurgeOptions(options)
    if options.stale_while_revalidate is not None:
        logger.debug(
            f"Soft purge of {options.key}: stale_while_revalidate is not stored, "
            "pass it to the next cachified() call"
        )
    return options


def soft_purge(cache: CacheStorage, options: SoftPurgeOptions | str) -> None:
    """
    Mark an entry stale without deleting it.

    A missing key is a no-op. Storage failures raise CacheError.

    Example:
        soft_purge(cache, "user:1")
        # next call with stale_while_revalidate serves the old value
        # while refreshing it in the background
    """
    options = _purge_options(options)
    key = options.key
    try:
        entry = _require_sync(cache.get(key), cache)
        if entry is None:
            logger.debug(f"Soft purge: {key} not cached")
            return
        cache.set(key, _soft_purged(entry, current_time()))
    except CachifiedError:
        raise
    except Exception as e:
        raise CacheError(f"Soft purge of {key} failed: {e}") from e
    logger.debug(f"Soft purged: {key}")


async def asoft_purge(cache: Any, options: SoftPurgeOptions | str) -> None:
    """Asyncio flavor of soft_purge()."""
    options = _purge_options(options)
    key = options.key
    try:
        entry = await _resolve(cache.get(key))
        if entry is None:
            logger.debug(f"Soft purge: {key} not cached")
            return
        await _resolve(cache.set(key, _soft_purged(entry, current_time())))
    except CachifiedError:
        raise
    except Exception as e:
        raise CacheError(f"Soft purge of {key} failed: {e}") from e
    logger.debug(f"Soft purged: {key}")
