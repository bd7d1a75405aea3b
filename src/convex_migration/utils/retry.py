"""Retry logic and decorators using tenacity.

This module provides retry decorators for the Convex and geocoding clients,
with exponential backoff, jitter, and Retry-After handling for rate limits.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from convex_migration.client.exceptions import NetworkError, RateLimitError, ServerError
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def _wait_for_retry_after(fallback: Callable[[RetryCallState], float]) -> Callable:
    """Honour the Retry-After header of a 429 before falling back to backoff."""

    def wait(retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitError) and exc.retry_after:
                return float(exc.retry_after)
        return fallback(retry_state)

    return wait


def retry_with_backoff(
    max_attempts: int = 5,
    min_wait: int = 2,
    max_wait: int = 60,
    retry_on_exceptions: tuple = (NetworkError, ServerError, RateLimitError),
) -> Callable[[F], F]:
    """Retry decorator for async client calls with exponential backoff and jitter.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        retry_on_exceptions: Tuple of exception types to retry on

    Returns:
        Decorated coroutine function with retry logic
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt_obj in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=_wait_for_retry_after(
                    wait_random_exponential(multiplier=1, min=min_wait, max=max_wait)
                ),
                retry=retry_if_exception_type(retry_on_exceptions),
                reraise=True,
            ):
                with attempt_obj:
                    attempt = attempt_obj.retry_state.attempt_number
                    if attempt > 1:
                        logger.info(
                            "retry_attempt",
                            function=func.__name__,
                            attempt=attempt,
                            max_attempts=max_attempts,
                        )
                    return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


# Pre-configured decorators for common use cases
retry_api_call = retry_with_backoff(max_attempts=5, min_wait=2, max_wait=60)

# A mutation that failed mid-flight may already have been applied, so only
# rejected-before-processing responses are retried.
retry_mutation = retry_with_backoff(
    max_attempts=3, min_wait=1, max_wait=10, retry_on_exceptions=(RateLimitError,)
)
