"""Retry helpers with exponential backoff for idempotent backend reads."""
import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger

from tasknest.exceptions import NetworkError

T = TypeVar('T')

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (NetworkError, ConnectionError, TimeoutError)


async def with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    initial_delay: float = 0.5,
    retry_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    **kwargs: Any
) -> T:
    """
    Await fn, retrying transient failures with exponential backoff.

    Only use this for reads. Writes to the object store are never retried
    automatically; the user re-triggers them.

    :param fn: Async function to execute
    :param max_retries: Maximum number of retry attempts (default 3)
    :param backoff_factor: Multiplier for delay between retries (default 1.5)
    :param initial_delay: Initial delay in seconds (default 0.5)
    :param retry_exceptions: Exception types considered transient
    :return: Result of fn
    :raises: The last exception once retries are exhausted
    """
    delay = initial_delay
    attempt = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except retry_exceptions as e:
            if attempt >= max_retries:
                logger.error(f"All {max_retries} retries failed for {fn.__name__}: {e}")
                raise
            attempt += 1
            logger.warning(
                f"Retry {attempt}/{max_retries} for {fn.__name__} "
                f"after {type(e).__name__}: {e}. Waiting {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor


def retry(
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    initial_delay: float = 0.5,
    retry_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of :func:`with_retry`."""
    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(
                fn,
                *args,
                max_retries=max_retries,
                backoff_factor=backoff_factor,
                initial_delay=initial_delay,
                retry_exceptions=retry_exceptions,
                **kwargs
            )
        return wrapper
    return decorator
