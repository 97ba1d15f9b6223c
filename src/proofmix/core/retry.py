"""
proofmix Retry Logic

Resilient HTTP request handling with exponential backoff for transient failures.

Used by the analytics aggregator client:
- Retries on 429 (rate limited) with Retry-After header support
- Retries on 502/503/504 with exponential backoff
- Retries on network errors (httpx.RequestError)

Retry can be switched off with PROOFMIX_NO_RETRY.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Optional, TypeVar, Union

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import is_retry_disabled

F = TypeVar("F", bound=Callable[..., Any])

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 0.5  # seconds
DEFAULT_MAX_WAIT = 10.0  # seconds

# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    503,  # Service Unavailable
    502,  # Bad Gateway
    504,  # Gateway Timeout
}

_retry_logger = logging.getLogger(__name__)


class RetryableHTTPError(Exception):
    """
    Exception for retryable HTTP errors.

    Preserves the original error information for logging and debugging.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.message: str = message
        self.status_code: Optional[int] = status_code
        self.retry_after: Optional[int] = retry_after
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class NonRetryableHTTPError(Exception):
    """
    Exception for HTTP errors that should NOT trigger retry
    (e.g., 404 Not Found, 401 Unauthorized).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.message: str = message
        self.status_code: Optional[int] = status_code
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


def is_retry_enabled() -> bool:
    """Check if retry logic is enabled (respects PROOFMIX_NO_RETRY)."""
    return not is_retry_disabled()


def _should_retry_exception(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger a retry.

    Args:
        exc: The exception to check

    Returns:
        True if the request should be retried
    """
    if isinstance(exc, RetryableHTTPError):
        return True
    if isinstance(exc, NonRetryableHTTPError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.RequestError):
        return True  # Network errors are retryable
    return False


def http_retry(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> Callable[[F], F]:
    """
    Decorator for HTTP requests with retry logic.

    Works for both sync and async callables (tenacity detects coroutines).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait: Minimum wait time between retries in seconds
        max_wait: Maximum wait time between retries in seconds

    Usage:
        @http_retry(max_attempts=5)
        async def fetch(client, url):
            ...
    """

    def decorator(func: F) -> F:
        if not is_retry_enabled():
            return func

        wrapped = retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception(_should_retry_exception),
            before_sleep=before_sleep_log(_retry_logger, logging.DEBUG),
            reraise=True,
        )(func)
        return wrapped  # type: ignore[return-value]

    return decorator


def classify_httpx_error(
    error: httpx.HTTPStatusError,
) -> Union[RetryableHTTPError, NonRetryableHTTPError]:
    """
    Classify an httpx HTTP status error as retryable or non-retryable.

    Args:
        error: The httpx HTTPStatusError to classify

    Returns:
        RetryableHTTPError for transient errors (429, 503, etc.)
        NonRetryableHTTPError for permanent errors (404, 401, etc.)
    """
    status_code = error.response.status_code

    try:
        error_json = error.response.json()
        message = error_json.get("error", str(error)) if isinstance(error_json, dict) else str(error)
    except (json.JSONDecodeError, ValueError):
        message = error.response.text or str(error)

    if status_code in RETRYABLE_STATUS_CODES:
        retry_after = error.response.headers.get("retry-after")
        try:
            retry_after_seconds = int(retry_after) if retry_after else None
        except ValueError:
            retry_after_seconds = None
        return RetryableHTTPError(
            message=message,
            status_code=status_code,
            retry_after=retry_after_seconds,
            original_error=error,
        )
    return NonRetryableHTTPError(message=message, status_code=status_code, original_error=error)
