"""
Retry utilities with exponential backoff for the card analysis pipeline.

Stages and external calls retry transient failures only. Anything that is not
classified as transient propagates on the first attempt.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, Union

import aiohttp

from cardlens.core.constants import CONTENT_REJECTION_MARKERS, TRANSIENT_HTTP_STATUSES
from cardlens.utils.error_handler import (
    CardLensError,
    ContentRejected,
    StageFailed,
    TransientExternalError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff used by every stage."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= (0.5 + rand() * 0.5)
        return delay


async def run_with_retry(
    func: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    retry_on: Union[Type[Exception], Tuple[Type[Exception], ...]] = TransientExternalError,
    logger=None,
    operation: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Run an async callable under a retry policy.

    Exceptions outside ``retry_on`` propagate unchanged on the attempt that
    raised them. When the retry budget is exhausted a ``StageFailed`` is
    raised, chained to the last retryable error.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            if attempt == policy.max_attempts:
                if logger:
                    logger.error(
                        f"{operation} failed after {policy.max_attempts} attempts",
                        operation=operation,
                        attempts=policy.max_attempts,
                        final_exception=str(e),
                    )
                raise StageFailed(
                    operation,
                    attempt,
                    details={"last_error": str(e), "error_type": type(e).__name__},
                ) from e

            delay = policy.delay_for(attempt)
            if logger:
                logger.warning(
                    f"{operation} failed (attempt {attempt}/{policy.max_attempts}), "
                    f"retrying in {delay:.2f}s",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay=delay,
                    exception=str(e),
                )
            await sleep(delay)

    raise StageFailed(operation, policy.max_attempts)


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Union[Type[Exception], tuple] = Exception,
    logger=None
):
    """
    Retry decorator with exponential backoff for async callables.

    The last exception is re-raised unchanged once ``max_attempts`` is reached.
    """
    policy = RetryPolicy(max_attempts, base_delay, max_delay, exponential_base, jitter)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        if logger:
                            logger.error(
                                f"Async function {func.__name__} failed after {max_attempts} attempts",
                                function=func.__name__,
                                attempts=max_attempts,
                                final_exception=str(e),
                            )
                        raise

                    delay = policy.delay_for(attempt)
                    if logger:
                        logger.warning(
                            f"Async function {func.__name__} failed (attempt {attempt}/{max_attempts}), "
                            f"retrying in {delay:.2f}s",
                            function=func.__name__,
                            attempt=attempt,
                            delay=delay,
                            exception=str(e),
                        )
                    await asyncio.sleep(delay)

        return async_wrapper

    return decorator


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error is retryable.

    Args:
        error: The exception to check

    Returns:
        True if the error is retryable, False otherwise
    """
    if isinstance(error, TransientExternalError):
        return True

    # Local filesystem problems never heal by waiting
    if isinstance(error, (FileNotFoundError, PermissionError, IsADirectoryError, NotADirectoryError)):
        return False

    if isinstance(error, aiohttp.ClientResponseError):
        return error.status in TRANSIENT_HTTP_STATUSES

    retryable_errors = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
        aiohttp.ClientConnectionError,
        aiohttp.ClientPayloadError,
        OSError,
    )

    if isinstance(error, retryable_errors):
        return True

    error_str = str(error).lower()
    retryable_keywords = [
        'timeout', 'timed out', 'connection refused', 'network unreachable',
        'temporary failure', 'service unavailable', 'service temporarily unavailable',
        'rate limit', 'throttl', 'too many requests', 'server error', 'gateway timeout'
    ]

    return any(keyword in error_str for keyword in retryable_keywords)


def is_content_rejection(error: Union[Exception, str]) -> bool:
    """True when an error message says the image is not an acceptable card."""
    error_str = str(error).lower()
    return any(marker in error_str for marker in CONTENT_REJECTION_MARKERS)


def classify_exception(error: Exception) -> Exception:
    """
    Map a raw library exception onto the pipeline error taxonomy.

    Errors that are already ``CardLensError`` instances (other than generic
    ones carrying a rejection message) and errors that are neither transient
    nor rejections are returned unchanged.
    """
    if isinstance(error, (ContentRejected, TransientExternalError, StageFailed)):
        return error

    if is_content_rejection(error):
        return ContentRejected(
            str(getattr(error, "message", error)),
            details={"error_type": type(error).__name__},
        )

    if isinstance(error, CardLensError):
        return error

    if is_retryable_error(error):
        details = {"error_type": type(error).__name__}
        status: Optional[int] = getattr(error, "status", None)
        if status is not None:
            details["status"] = status
        return TransientExternalError(str(error) or type(error).__name__, details=details)

    return error
