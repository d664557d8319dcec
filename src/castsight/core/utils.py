"""
Utility functions and performance helpers for CastSight.

This module provides:
- Performance timing decorators
- Defensive numeric coercion for loosely typed telemetry payloads
- Identifier normalization helpers
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])


def timed(func: F) -> F:
    """
    Decorator to measure and log function execution time.

    Usage:
        @timed
        def my_function():
            ...
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - start_time
        logger.debug(f"{func.__name__} completed in {elapsed:.3f}s")
        return result

    return wrapper  # type: ignore


class PerformanceMonitor:
    """
    Context manager for monitoring performance of code blocks.

    Usage:
        with PerformanceMonitor("resolving attempts"):
            resolve_intent_attempts(...)
    """

    def __init__(self, operation_name: str, log_level: int = logging.DEBUG):
        self.operation_name = operation_name
        self.log_level = log_level
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - (self.start_time or 0)
        if exc_type is not None:
            logger.error(f"{self.operation_name} failed after {elapsed:.3f}s: {exc_val}")
        else:
            logger.log(self.log_level, f"{self.operation_name} completed in {elapsed:.3f}s")
        return False


def is_real_number(value: Any) -> bool:
    """True for ints and floats (including numpy scalars), never for bools."""
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, (int, float, np.integer, np.floating))


def as_finite_number(value: Any) -> float | None:
    """
    Return value as a float if it is a finite real number.

    Strings are NOT accepted; use coerce_finite_number for payload fields
    that may arrive as numeric strings.
    """
    if not is_real_number(value):
        return None
    number = float(value)
    if not np.isfinite(number):
        return None
    return number


def coerce_finite_number(value: Any) -> float | None:
    """
    Coerce a number or numeric string to a finite float.

    Args:
        value: Raw payload value

    Returns:
        Float value, or None when the value is missing, blank or not finite
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if np.isfinite(number) else None
    return as_finite_number(value)


def normalize_count(value: Any) -> int:
    """Truncate a loosely typed count to a non-negative int (0 when unusable)."""
    number = coerce_finite_number(value)
    if number is None:
        return 0
    return max(0, int(number))


def as_ability_id(value: Any) -> int | None:
    """
    Validate an ability id.

    Ability ids must be positive integers. Integral floats (as produced by
    JSON/Lua number decoding) are accepted.
    """
    number = as_finite_number(value)
    if number is None or number <= 0 or not number.is_integer():
        return None
    return int(number)


def normalize_guid(value: Any) -> str | None:
    """Trim and lower-case an actor guid; None when blank or not a string."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed.lower() if trimmed else None


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Safely divide two numbers, returning default if denominator is 0.

    Args:
        numerator: Top of fraction
        denominator: Bottom of fraction
        default: Value to return if denominator is 0

    Returns:
        Result of division or default
    """
    if denominator == 0:
        return default
    return numerator / denominator


def format_percentage(value: float, decimals: int = 1) -> str:
    """Format an already-scaled percentage (0-100) for display."""
    return f"{value:.{decimals}f}%"
