"""
Value validation for cached and freshly produced entries.

A validator is any object with ``check(value)`` that raises ValidationError
when the value is unusable. A rejected cached value is recomputed; a rejected
fresh value is an error for the caller.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from .errors import CachifiedError, ValidationError


class CheckValue(Protocol):
    """Protocol for value validators."""

    def check(self, value: Any) -> None:
        """Raise ValidationError if value is invalid."""
        ...


class FunctionValidator:
    """
    Validator backed by a plain function.

    The function may raise to reject the value, or return False. Any other
    return value (including None) accepts it.
    """

    def __init__(self, func: Callable[[Any], Any]):
        self.func = func

    def check(self, value: Any) -> None:
        try:
            result = self.func(value)
        except CachifiedError:
            raise
        except Exception as e:
            raise ValidationError(str(e)) from e
        if result is False:
            raise ValidationError(f"{value!r} rejected by {self.func!r}")


class NoValidator:
    """Accepts everything."""

    def check(self, value: Any) -> None:
        return None


class NonNullValidator:
    """Rejects None."""

    def check(self, value: Any) -> None:
        if value is None:
            raise ValidationError("Value is None")


class NonEmptyStringValidator:
    """Rejects empty strings."""

    def check(self, value: Any) -> None:
        if value == "":
            raise ValidationError("String is empty")


def validator(func: Callable[[Any], Any]) -> FunctionValidator:
    """
    Build a validator from a function.

    Example:
        positive = validator(lambda x: x > 0)
        positive.check(5)   # ok
        positive.check(-1)  # raises ValidationError
    """
    return FunctionValidator(func)


def as_validator(check_value: Any) -> CheckValue | None:
    """Normalize a validator argument: None, a CheckValue, or a bare callable."""
    if check_value is None or hasattr(check_value, "check"):
        return check_value
    if callable(check_value):
        return FunctionValidator(check_value)
    raise TypeError(f"Not a validator: {check_value!r}")
