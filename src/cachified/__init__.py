"""
Freshness and revalidation in front of any key-value store: TTL checks,
stale-while-revalidate, validation-triggered recomputation and soft purge.

Expose the engine, storage backends, validators and decorators under `cachified`.
"""

from .errors import (
    CachifiedError,
    FreshValueError,
    ValidationError,
    CacheError,
    OtherError,
)
from .storage import (
    CacheMetadata,
    CacheEntry,
    CacheStorage,
    InMemCache,
    RedisCache,
    AsyncRedisCache,
    current_time,
    validate_cache_storage,
)
from .validation import (
    CheckValue,
    FunctionValidator,
    NoValidator,
    NonNullValidator,
    NonEmptyStringValidator,
    validator,
)
from .options import (
    CachifiedOptions,
    CachifiedOptionsBuilder,
    SoftPurgeOptions,
)
from .engine import (
    cachified,
    acachified,
    spawn_refresh,
    aspawn_refresh,
    soft_purge,
    asoft_purge,
)
from .decorators import (
    CachifiedCache,
    Cachified,
)

__all__ = [
    "CachifiedError",
    "FreshValueError",
    "ValidationError",
    "CacheError",
    "OtherError",
    "CacheMetadata",
    "CacheEntry",
    "CacheStorage",
    "InMemCache",
    "RedisCache",
    "AsyncRedisCache",
    "current_time",
    "validate_cache_storage",
    "CheckValue",
    "FunctionValidator",
    "NoValidator",
    "NonNullValidator",
    "NonEmptyStringValidator",
    "validator",
    "CachifiedOptions",
    "CachifiedOptionsBuilder",
    "SoftPurgeOptions",
    "cachified",
    "acachified",
    "spawn_refresh",
    "aspawn_refresh",
    "soft_purge",
    "asoft_purge",
    "CachifiedCache",
    "Cachified",
]
