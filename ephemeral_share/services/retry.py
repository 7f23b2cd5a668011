"""
Bounded retry with exponential backoff for transient storage failures.
"""
import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError

from ephemeral_share.config import settings
from ephemeral_share.errors import Unavailable
from ephemeral_share.logging_config import setup_logging
from ephemeral_share.storage.exceptions import StorageUnavailableError

logger = setup_logging()

T = TypeVar("T")

# Only these are worth another attempt; everything else surfaces immediately
TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    StorageUnavailableError,
    OperationalError,
)


async def call_with_retry(
    operation: Callable[[], T | Awaitable[T]],
    *,
    description: str,
    attempts: int | None = None,
    base_delay: float | None = None,
    on_retry: Callable[[], None] | None = None,
) -> T:
    """
    Run ``operation`` and retry it on transient failures.

    The operation may be a plain callable or return an awaitable. The delay
    before retry ``n`` (0-based) is ``base_delay * 2**n``.

    Args:
        operation: Zero-argument callable to run
        description: Short label for log messages
        attempts: Total attempts (default ``STORAGE_RETRY_ATTEMPTS``)
        base_delay: First backoff delay in seconds
        on_retry: Hook run before each retry (e.g. ``db.rollback``)

    Returns:
        The operation's result

    Raises:
        Unavailable: When every attempt failed with a transient error
    """
    attempts = attempts if attempts is not None else settings.STORAGE_RETRY_ATTEMPTS
    base_delay = (
        base_delay if base_delay is not None else settings.STORAGE_RETRY_BASE_DELAY_SECONDS
    )
    attempts = max(attempts, 1)

    for attempt in range(attempts):
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result
        except TRANSIENT_EXCEPTIONS as e:
            if attempt == attempts - 1:
                logger.error(
                    f"{description} failed after {attempts} attempts: {str(e)}"
                )
                raise Unavailable() from e

            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.2f}s: {str(e)}"
            )
            if on_retry is not None:
                on_retry()
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise Unavailable()
