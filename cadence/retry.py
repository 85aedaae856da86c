"""Retry with exponential backoff and jitter for external API calls."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

import httpx

T = TypeVar("T")
logger = logging.getLogger(__name__)

ShouldRetry = Callable[[BaseException], bool]
OnRetry = Callable[[int, BaseException, float], None]

_TRANSIENT_MARKERS = (
    "network",
    "timeout",
    "econnreset",
    "connection reset",
    "429",
    "rate limit",
    "500",
    "502",
    "503",
    "504",
)


class RetryableStatusError(Exception):
    """An HTTP response that arrived fine but carries a 429 or 5xx status."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.status_code = response.status_code
        if response.status_code == 429:
            message = "Rate limited (429)"
        else:
            message = f"Server error: {response.status_code}"
        super().__init__(message)


def is_transient_error(error: BaseException) -> bool:
    """Default retry policy: network failures, timeouts, 429 and 5xx."""
    if isinstance(error, (httpx.TransportError, httpx.TimeoutException, TimeoutError, ConnectionError)):
        return True
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code == 429 or status_code >= 500
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay for a 0-based attempt plus up to 50% of base_delay jitter."""
    exponential = base_delay * (2 ** attempt)
    jitter = random.uniform(0, base_delay * 0.5)
    return min(exponential + jitter, max_delay)


def _log_retry(attempt: int, error: BaseException, delay: float) -> None:
    logger.warning("Retry attempt %d failed, retrying in %.2fs: %s", attempt, delay, error)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: ShouldRetry | None = None,
    on_retry: OnRetry | None = None,
) -> T:
    """
    Await ``operation()`` until it succeeds or retries are exhausted.

    Total attempts are ``max_retries + 1``. When ``should_retry`` rejects an
    error, or the last attempt fails, that error is re-raised unchanged.
    Delays are in seconds.
    """
    should_retry = should_retry or is_transient_error
    on_retry = on_retry or _log_retry

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not should_retry(e):
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            on_retry(attempt + 1, e, delay)
            await asyncio.sleep(delay)
            attempt += 1


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retry: dict[str, Any] | None = None,
    **request_kwargs: Any,
) -> httpx.Response:
    """Send a request through ``with_retry``; 429 and 5xx responses are retried."""

    async def _send() -> httpx.Response:
        response = await client.request(method, url, **request_kwargs)
        if response.status_code >= 500 or response.status_code == 429:
            raise RetryableStatusError(response)
        return response

    return await with_retry(_send, **(retry or {}))


def retryable(**options: Any):
    """Decorator: every call of the wrapped coroutine function goes through ``with_retry``."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(lambda: func(*args, **kwargs), **options)

        return wrapper

    return decorator
