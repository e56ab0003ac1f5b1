"""
Cache decorator for function result caching.

Provides:
- CachifiedCache (alias Cachified): runs every call through the decision
  engine, with TTL, stale-while-revalidate, validation and fallback
"""

from __future__ import annotations

import inspect
from functools import partial
from typing import Any, Callable, TypeVar

from .engine import acachified, asoft_purge, cachified, soft_purge
from .options import CachifiedOptions, Duration
from .storage import CacheStorage, InMemCache

T = TypeVar("T")


def _make_key(key: str | Callable[..., str], args: tuple, kwargs: dict) -> str:
    if callable(key):
        return key(*args, **kwargs)
    if "{" not in key:
        return key
    # Simple format string with first arg
    if args:
        return key.format(args[0])
    return key.format(**kwargs)


class CachifiedCache:
    """
    Decorator front-end for cachified(). Works with sync and async functions.

    Example:
        @Cachified.cached("user:{}", ttl=60, stale_while_revalidate=300)
        def get_user(user_id):
            return db.fetch_user(user_id)

        # Async function with a shared Redis backend
        @Cachified.cached("product:{}", ttl=60, cache=redis_cache)
        async def get_product(product_id):
            return await db.fetch_product(product_id)
    """

    @classmethod
    def cached(
        cls,
        key: str | Callable[..., str],
        ttl: Duration,
        stale_while_revalidate: Duration | None = None,
        cache: CacheStorage | None = None,
        check_value: Any = None,
        fallback_to_cache: bool = False,
        dedupe_refresh: bool = False,
    ) -> Callable[[Callable[..., T]], Callable[..., T]]:
        """
        Cache decorator.

        Args:
            key: Cache key template (e.g., "user:{}") or generator function.
            ttl: Fresh TTL in seconds (or timedelta).
            stale_while_revalidate: Extra time to serve stale data while refreshing.
            cache: Optional cache backend (defaults to a private InMemCache).
            check_value: Validator or predicate applied to cached and fresh values.
            fallback_to_cache: Serve the stored value if the function raises.
            dedupe_refresh: At most one background refresh per key at a time.

        The wrapper also exposes:
            refresh(*args, **kwargs): call with force_fresh and store the result
            soft_purge(*args, **kwargs): mark the entry for these args stale
        """
        # Each decorated function gets its own cache instance
        function_cache = cache if cache is not None else InMemCache()

        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            def options_for(args, kwargs, force_fresh=False) -> CachifiedOptions:
                return CachifiedOptions(
                    cache=function_cache,
                    key=_make_key(key, args, kwargs),
                    get_fresh_value=partial(func, *args, **kwargs),
                    ttl=ttl,
                    stale_while_revalidate=stale_while_revalidate,
                    force_fresh=force_fresh,
                    fallback_to_cache=fallback_to_cache,
                    check_value=check_value,
                    dedupe_refresh=dedupe_refresh,
                )

            if inspect.iscoroutinefunction(func):

                async def async_wrapper(*args, **kwargs) -> T:
                    return await acachified(options_for(args, kwargs))

                async def async_refresh(*args, **kwargs) -> T:
                    return await acachified(options_for(args, kwargs, force_fresh=True))

                async def async_purge(*args, **kwargs) -> None:
                    await asoft_purge(function_cache, _make_key(key, args, kwargs))

                wrapper = async_wrapper
                wrapper.refresh = async_refresh  # type: ignore
                wrapper.soft_purge = async_purge  # type: ignore
            else:

                def sync_wrapper(*args, **kwargs) -> T:
                    return cachified(options_for(args, kwargs))

                def sync_refresh(*args, **kwargs) -> T:
                    return cachified(options_for(args, kwargs, force_fresh=True))

                def sync_purge(*args, **kwargs) -> None:
                    soft_purge(function_cache, _make_key(key, args, kwargs))

                wrapper = sync_wrapper
                wrapper.refresh = sync_refresh  # type: ignore
                wrapper.soft_purge = sync_purge  # type: ignore

            # Store cache reference for testing/debugging
            wrapper.__wrapped__ = func  # type: ignore
            wrapper.__name__ = func.__name__  # type: ignore
            wrapper.__doc__ = func.__doc__  # type: ignore
            wrapper._cache = function_cache  # type: ignore

            return wrapper  # type: ignore

        return decorator


# Alias for shorter usage
Cachified = CachifiedCache
