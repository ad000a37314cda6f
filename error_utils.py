"""
Janitor exception hierarchy and small helpers shared across modules.
"""

from typing import Any, Optional


class JanitorError(Exception):
    """Base class for every error the janitor surfaces to the operator."""

    exit_code = 1


class UsageError(JanitorError):
    """Raised when the command line is missing a locator or a category."""

    exit_code = 2


class InitializationError(JanitorError):
    """Raised when the DSN cannot be turned into a usable SQL store."""

    pass


class ConfigurationError(JanitorError):
    """Raised when configuration is invalid or a run has nothing to do."""

    pass


class RoutineError(JanitorError):
    """
    Raised when a single flush routine fails.

    The failing category is kept on the exception so the operator can tell
    which purge broke without digging through the storage error chained in
    ``__cause__``.
    """

    def __init__(self, category, message: Optional[str] = None):
        self.category = category
        super().__init__(message or f"Could not cleanup inactive {category}")

    def __str__(self) -> str:
        base = super().__str__()
        if self.__cause__ is not None:
            return f"{base}: {self.__cause__}"
        return base


class CleanupCancelledError(JanitorError):
    """Raised when a run is cancelled or exceeds its deadline."""

    exit_code = 130


def describe_error(error: BaseException) -> str:
    """Render an error together with its chained causes on one line."""
    parts = [str(error) or error.__class__.__name__]
    cause = error.__cause__
    while cause is not None:
        text = str(cause) or cause.__class__.__name__
        if text not in parts[-1]:
            parts.append(text)
        cause = cause.__cause__
    return ": ".join(parts)


def safe_float_conversion(
    value: Any,
    default: float = 0.0,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> float:
    """
    Safely convert a value to float with bounds checking.

    Args:
        value: Value to convert
        default: Default value if conversion fails
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        float: Converted and validated float
    """
    try:
        result = float(value)

        if min_val is not None and result < min_val:
            return default
        if max_val is not None and result > max_val:
            return default

        return result
    except (ValueError, TypeError):
        return default
