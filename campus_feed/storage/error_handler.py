"""Retry logic for backend requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar, cast

import aiohttp
from aiohttp.client_exceptions import ClientResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]

DEFAULT_RETRY_AFTER_SEC = 5.0


def retry_after_seconds(error: ClientResponseError) -> float:
    """Parse the Retry-After header of a 429 response."""
    headers = error.headers or {}
    try:
        return float(headers.get("Retry-After", DEFAULT_RETRY_AFTER_SEC))
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SEC


def with_exponential_backoff(
    max_retries: int = 3,
    initial_backoff: float = 0.5,
    max_backoff: float = 8.0,
    backoff_factor: float = 2.0,
    prometheus_exporter=None,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async backend requests with exponential backoff.

    Server errors (5xx), rate limiting (429), connection errors and timeouts
    are retried. Other client errors are raised immediately.

    Args:
        max_retries: Maximum number of retry attempts
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries
        prometheus_exporter: Optional Prometheus exporter for error metrics

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = 0
            backoff = initial_backoff

            while True:
                try:
                    return await func(*args, **kwargs)

                except ClientResponseError as e:
                    if e.status == 429:
                        if prometheus_exporter:
                            prometheus_exporter.record_api_error("429")
                        if retries >= max_retries:
                            logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                            raise
                        wait = min(retry_after_seconds(e), max_backoff)
                        logger.warning(f"Rate limited (429). Waiting {wait:.2f}s before retrying.")
                        await asyncio.sleep(wait)
                        retries += 1
                        continue

                    elif 500 <= e.status < 600:
                        if prometheus_exporter:
                            prometheus_exporter.record_api_error("5xx")
                        if retries >= max_retries:
                            logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                            raise
                        logger.warning(
                            f"Server error {e.status}: {e.message}. "
                            f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                        )
                        await asyncio.sleep(backoff)
                        retries += 1
                        backoff = min(backoff * backoff_factor, max_backoff)
                        continue

                    else:
                        logger.warning(f"Client error {e.status}: {e.message}")
                        if prometheus_exporter:
                            prometheus_exporter.record_api_error("4xx")
                        raise

                except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                    if prometheus_exporter:
                        prometheus_exporter.record_api_error("connection")
                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded: {e!r}")
                        raise
                    logger.warning(
                        f"Connection error: {e!r}. "
                        f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                    )
                    await asyncio.sleep(backoff)
                    retries += 1
                    backoff = min(backoff * backoff_factor, max_backoff)
                    continue

        return cast(AsyncFunc[T], wrapper)
    return decorator
