"""
Retry utilities with exponential backoff.

Used for outbound calls to hosted services (payment gateway status API)
where a transient network failure should not fail the whole request.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(f"{operation} failed after {attempts} attempts. Last error: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> T:
    """
    Retry an async operation with exponential backoff.

    Args:
        func: Zero-argument callable returning an awaitable
        max_retries: Maximum number of attempts (default: 3)
        backoff_factor: Multiplier for delay between attempts (default: 1.5)
        initial_delay: Initial delay in seconds (default: 0.5)
        max_delay: Maximum delay between attempts in seconds (default: 10.0)
        retry_on: Exception types that trigger another attempt; anything else
            propagates immediately
        operation_name: Name for logging purposes

    Returns:
        Result from the first successful call

    Raises:
        RetryExhaustedError: If all attempts fail with a retryable error

    Example:
        >>> data = await with_retry(
        ...     lambda: client.get(url),
        ...     retry_on=(httpx.TransportError,),
        ...     operation_name="eSewa status check",
        ... )
    """
    name = operation_name or getattr(func, "__name__", "operation")
    last_exception: Optional[BaseException] = None

    for attempt in range(max_retries):
        try:
            logger.debug(f"Attempt {attempt + 1}/{max_retries}: {name}")
            result = await func()

            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}/{max_retries}")

            return result

        except retry_on as e:
            last_exception = e

            if attempt < max_retries - 1:
                delay = min(initial_delay * (backoff_factor**attempt), max_delay)
                logger.warning(f"{name} failed (attempt {attempt + 1}/{max_retries}): {e}")
                logger.info(f"Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)
            else:
                logger.error(f"{name} failed after {max_retries} attempts: {e}")

    raise RetryExhaustedError(name, max_retries, last_exception) from last_exception
