"""
Per-call configuration for cachified() and soft_purge().

Options are immutable; CachifiedOptionsBuilder is a fluent way to build them.

Example:
    options = (
        CachifiedOptionsBuilder(cache, "user:1")
        .ttl(300)
        .stale_while_revalidate(60)
        .get_fresh_value(lambda: db.fetch_user(1))
    )
    user = cachified(options)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable

from .storage import CacheStorage
from .validation import CheckValue, as_validator

Duration = float | int | timedelta


def to_seconds(duration: Duration | None, name: str = "duration") -> float | None:
    """Normalize a duration to float seconds, rejecting negative values."""
    if duration is None:
        return None
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    else:
        seconds = float(duration)
    if seconds < 0:
        raise ValueError(f"{name} must be non-negative, got {duration!r}")
    return seconds


@dataclass(frozen=True)
class CachifiedOptions:
    """
    Configuration of one cachified() call.

    Attributes:
        cache: Storage backend (any CacheStorage).
        key: Cache key.
        get_fresh_value: Zero-argument producer of the authoritative value.
        ttl: Seconds a newly written entry stays fresh. None or 0 skips
            persisting on the synchronous path.
        stale_while_revalidate: Seconds after expiry during which the stale
            value is served while a background refresh runs.
        force_fresh: Skip the cache lookup.
        fallback_to_cache: Serve the stored value when the producer fails.
        check_value: Validator for stored and fresh values.
        dedupe_refresh: Dispatch at most one background refresh per
            (storage, key) at a time within this process.
    """

    cache: CacheStorage
    key: str
    get_fresh_value: Callable[[], Any]
    ttl: float | None = None
    stale_while_revalidate: float | None = None
    force_fresh: bool = False
    fallback_to_cache: bool = False
    check_value: CheckValue | None = None
    dedupe_refresh: bool = False

    def __post_init__(self):
        object.__setattr__(self, "ttl", to_seconds(self.ttl, "ttl"))
        object.__setattr__(
            self,
            "stale_while_revalidate",
            to_seconds(self.stale_while_revalidate, "stale_while_revalidate"),
        )
        object.__setattr__(self, "check_value", as_validator(self.check_value))


class CachifiedOptionsBuilder:
    """Fluent builder for CachifiedOptions. All optional settings default to off."""

    def __init__(self, cache: CacheStorage, key: str):
        self._cache = cache
        self._key = key
        self._ttl: Duration | None = None
        self._swr: Duration | None = None
        self._force_fresh = False
        self._fallback_to_cache = False
        self._check_value: Any = None
        self._dedupe_refresh = False

    def ttl(self, ttl: Duration) -> CachifiedOptionsBuilder:
        self._ttl = ttl
        return self

    def stale_while_revalidate(self, duration: Duration) -> CachifiedOptionsBuilder:
        self._swr = duration
        return self

    def force_fresh(self, force: bool = True) -> CachifiedOptionsBuilder:
        self._force_fresh = force
        return self

    def fallback_to_cache(self, fallback: bool = True) -> CachifiedOptionsBuilder:
        self._fallback_to_cache = fallback
        return self

    def check_value(self, check_value: Any) -> CachifiedOptionsBuilder:
        self._check_value = check_value
        return self

    def dedupe_refresh(self, dedupe: bool = True) -> CachifiedOptionsBuilder:
        self._dedupe_refresh = dedupe
        return self

    def get_fresh_value(self, get_fresh_value: Callable[[], Any]) -> CachifiedOptions:
        """Finish the builder with the producer and return the options."""
        return CachifiedOptions(
            cache=self._cache,
            key=self._key,
            get_fresh_value=get_fresh_value,
            ttl=self._ttl,
            stale_while_revalidate=self._swr,
            force_fresh=self._force_fresh,
            fallback_to_cache=self._fallback_to_cache,
            check_value=self._check_value,
            dedupe_refresh=self._dedupe_refresh,
        )


@dataclass(frozen=True)
class SoftPurgeOptions:
    """
    Options for soft_purge().

    stale_while_revalidate is accepted but not stored with the entry: the SWR
    window in effect is the one passed to the next cachified() call.
    """

    key: str
    stale_while_revalidate: float | None = field(default=None)

    def __post_init__(self):
        object.__setattr__(
            self,
            "stale_while_revalidate",
            to_seconds(self.stale_while_revalidate, "stale_while_revalidate"),
        )

    def with_stale_while_revalidate(self, duration: Duration) -> SoftPurgeOptions:
        return replace(self, stale_while_revalidate=duration)
