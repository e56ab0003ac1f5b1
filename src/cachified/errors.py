"""
Exceptions raised by cachified operations.

Callers always get either a value or one of these; every kind derives from
CachifiedError so a single except clause covers them all.
"""

from __future__ import annotations


class CachifiedError(Exception):
    """Base class for cachified errors."""

    prefix = "Cachified error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class FreshValueError(CachifiedError):
    """The producer failed to compute a fresh value."""

    prefix = "Failed to get fresh value"


class ValidationError(CachifiedError):
    """A value was rejected by a validator."""

    prefix = "Cache validation failed"


class CacheError(CachifiedError):
    """A storage operation failed."""

    prefix = "Cache operation failed"


class OtherError(CachifiedError):
    """Uncategorized failure."""
