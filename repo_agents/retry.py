"""
Backoff helpers for GitHub calls.

Two policies are used by the outputs stage: transient transport and rate-limit
failures on every REST/GraphQL request, and optimistic-concurrency conflicts on
label writes. Only wrap operations that can be repeated without side effects.
"""
import asyncio
import logging
import random
from functools import wraps
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from repo_agents.errors import ConflictError, GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIABLE: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    ConnectionError,
    httpx.TransportError,
)

# rate limited or upstream unavailable
RETRIABLE_STATUSES = frozenset({429, 502, 503, 504})

MAX_BACKOFF_SECONDS = 30.0

Predicate = Callable[[BaseException], bool]


def is_retriable_default(exc: BaseException) -> bool:
    """Transport failures and throttled/unavailable gateway responses."""
    if isinstance(exc, GatewayError):
        return exc.status in RETRIABLE_STATUSES
    return isinstance(exc, DEFAULT_RETRIABLE)


def is_conflict(exc: BaseException) -> bool:
    return isinstance(exc, ConflictError)


def backoff_delay(attempt: int, backoff_base: float, jitter: bool) -> float:
    """Seconds to wait after the given zero-based failed attempt."""
    if backoff_base <= 0:
        return 0.0
    delay = backoff_base ** (attempt + 1)
    if jitter:
        delay *= 0.5 + random.random()
    return min(delay, MAX_BACKOFF_SECONDS)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    backoff_base: float = 2.0,
    jitter: bool = True,
    retriable: Optional[Predicate] = None,
    operation_name: str = "operation",
) -> T:
    """
    Await ``fn()`` until it succeeds, it raises something ``retriable`` rejects,
    or ``max_retries`` extra attempts have been spent. The last error propagates.

    A ``backoff_base`` of 0 retries immediately, which is what the label
    compare-and-swap loop wants.
    """
    should_retry = retriable or is_retriable_default
    attempts = max_retries + 1
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if not should_retry(exc):
                logger.warning(f"{operation_name} failed with a permanent error: {exc}")
                raise
            if attempt + 1 >= attempts:
                logger.warning(f"{operation_name} gave up after {attempts} attempts: {exc}")
                raise
            wait = backoff_delay(attempt, backoff_base, jitter)
            logger.info(f"{operation_name} attempt {attempt + 1}/{attempts} failed ({exc}); next in {wait:.1f}s")
            await asyncio.sleep(wait)
            attempt += 1


def with_retry(
    max_retries: int = 3,
    backoff_base: float = 2.0,
    jitter: bool = True,
    retriable: Optional[Predicate] = None,
    operation_name: Optional[str] = None,
):
    """Decorator form of :func:`retry_async` for coroutine functions and methods."""
    def decorator(f: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        label = operation_name or f.__qualname__

        @wraps(f)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(
                lambda: f(*args, **kwargs),
                max_retries=max_retries,
                backoff_base=backoff_base,
                jitter=jitter,
                retriable=retriable,
                operation_name=label,
            )
        return wrapper
    return decorator
