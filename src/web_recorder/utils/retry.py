"""
Retry, polling and timeout helpers for driver calls.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from web_recorder.exceptions import DriverTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts
        initial_delay_ms: Delay before the first retry
        max_delay_ms: Upper bound for the delay between retries
        backoff_multiplier: Multiplier for exponential backoff
        retry_on: Exception types worth another attempt
    """
    max_attempts: int = 3
    initial_delay_ms: int = 500
    max_delay_ms: int = 5000
    backoff_multiplier: float = 2.0
    retry_on: Tuple[Type[Exception], ...] = (Exception,)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    config: RetryConfig,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Call an async function, retrying on the configured exception types.

    Raises:
        The last exception once every attempt has failed
    """
    last_exception: Optional[Exception] = None
    delay_ms: float = config.initial_delay_ms

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retry_on as e:
            last_exception = e
            if attempt == config.max_attempts - 1:
                break
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed: {e}. "
                f"Retrying in {delay_ms:.0f}ms..."
            )
            await asyncio.sleep(delay_ms / 1000)
            delay_ms = min(delay_ms * config.backoff_multiplier, config.max_delay_ms)

    raise last_exception  # type: ignore


async def with_timeout(
    coro: Awaitable[T],
    timeout_seconds: float,
    operation: str = "operation",
) -> T:
    """
    Await a coroutine, raising DriverTimeout if it takes too long.

    Args:
        coro: Coroutine to execute
        timeout_seconds: Timeout in seconds
        operation: Name used in the error message

    Returns:
        Coroutine result
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise DriverTimeout(
            f"{operation} timed out after {timeout_seconds}s",
            timeout_seconds=timeout_seconds,
            operation=operation,
        )


async def poll_until(
    check: Callable[[], Awaitable[bool]],
    timeout_seconds: float,
    interval_seconds: float,
) -> bool:
    """
    Call ``check`` every ``interval_seconds`` until it returns True.

    Returns:
        True if the check passed before the deadline, False otherwise
    """
    deadline = time.monotonic() + timeout_seconds
    while True:
        if await check():
            return True
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(interval_seconds)
