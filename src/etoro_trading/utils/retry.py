"""
Retry utilities for handling transient errors.

Exponential backoff with jitter and server-specified Retry-After support.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25


async def retry(
    func: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay: float,
    should_retry: Callable[[BaseException], bool],
    backoff_multiplier: float = 2.0,
    jitter: bool = True,
    get_retry_after: Optional[Callable[[BaseException], Optional[float]]] = None,
    on_retry: Optional[Callable[[int, float, BaseException], Any]] = None
) -> T:
    """
    Call `func` until it succeeds, the error is not retryable, or attempts run out.

    Wait time before the next attempt, in priority order:
    1. `get_retry_after(error)` if it returns a value (used verbatim, never jittered)
    2. delay * backoff_multiplier ** attempt  (attempt is zero-based)
    3. +/- 25% random jitter on the computed backoff when `jitter` is set

    The original exception is re-raised when giving up.

    Args:
        func: Zero-argument coroutine function to call
        attempts: Maximum number of calls (at least one call is always made)
        delay: Base delay in seconds
        should_retry: Predicate deciding whether an error is retryable
        backoff_multiplier: Base of the exponential backoff (default: 2)
        jitter: Randomize the computed backoff (default: True)
        get_retry_after: Extracts a server-specified delay in seconds from an error
        on_retry: Called with (upcoming attempt number, wait seconds, error)

    Example:
        result = await retry(
            lambda: client.fetch(),
            attempts=3,
            delay=1.0,
            should_retry=lambda e: isinstance(e, TransientError)
        )
    """
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return await func()
        except Exception as e:
            if attempt == attempts - 1 or not should_retry(e):
                raise

            retry_after = get_retry_after(e) if get_retry_after else None
            if retry_after is not None:
                wait = retry_after
            else:
                wait = delay * backoff_multiplier ** attempt
                if jitter:
                    wait = apply_jitter(wait)

            logger.warning(
                "retrying_after_error",
                function=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                max_attempts=attempts,
                delay_seconds=wait,
                error=str(e)
            )

            if on_retry is not None:
                try:
                    on_retry(attempt + 1, wait, e)
                except Exception as hook_error:
                    logger.error("on_retry hook failed", error=str(hook_error))

            await asyncio.sleep(wait)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without result")


def apply_jitter(wait: float) -> float:
    """Apply +/- 25% uniform random jitter to a delay."""
    spread = wait * JITTER_RATIO
    return wait + random.uniform(-spread, spread)
