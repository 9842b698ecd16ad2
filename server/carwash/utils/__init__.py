"""Utility modules for the car wash API."""

from .retry import RetryExhaustedError, with_retry

__all__ = [
    "RetryExhaustedError",
    "with_retry",
]
