"""Bounded exponential backoff for coroutines."""
import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    initial_delay: float = 0.5,
    factor: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = 'operation',
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``operation`` until it succeeds or ``attempts`` are used up.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        attempts: Total number of attempts (at least one)
        initial_delay: Seconds to wait after the first failure
        factor: Multiplier applied to the delay after each failure
        retry_on: Exception types that trigger another attempt
        description: Name used in log messages
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The operation's result

    Raises:
        The last exception raised once every attempt has failed
    """
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as e:
            if attempt < attempts - 1:
                delay = initial_delay * (factor ** attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{attempts}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                await sleep(delay)
            else:
                logger.error(
                    f"All {attempts} attempts of {description} failed. Last error: {e}"
                )
                raise
