"""
Rate limiter for exchange API requests.

Sliding-window request bucket with a FIFO wait queue. Prevents 429
responses by proactively throttling outgoing requests; when the server still
answers 429, penalize() pauses every request for the Retry-After duration.
"""

import asyncio
import time
from collections import deque
from typing import Deque, Dict, Optional

from .exceptions import RateLimiterDisposedError
from .exchange_config import DEFAULT_MAX_REQUESTS, DEFAULT_RATE_WINDOW, RateLimitConfig
from ..utils.logger import EventType, get_logger, log_system_event


logger = get_logger(__name__)


class RateLimiter:
    """
    Request rate limiter.

    - At most `max_requests` grants within any `window` seconds
    - Queued callers are served strictly in arrival order
    - A penalty window blocks every grant until it expires
    - dispose() rejects queued callers and turns acquire() into a no-op
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window: float = DEFAULT_RATE_WINDOW
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Max requests allowed per window
            window: Window length in seconds
        """
        self.max_requests = max_requests
        self.window = window

        self._timestamps: Deque[float] = deque()
        self._penalty_until = 0.0
        self._waiters: Deque[asyncio.Future] = deque()
        self._processor: Optional[asyncio.Task] = None
        self._disposed = False

        # Statistics
        self._request_count = 0
        self._rate_limit_hits = 0
        self._penalties = 0
        self._start_time = time.monotonic()

        logger.debug(
            "Rate limiter initialized",
            max_requests=max_requests,
            window_seconds=window
        )

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "RateLimiter":
        return cls(max_requests=config.max_requests, window=config.window)

    async def acquire(self) -> None:
        """
        Acquire permission to make an API request.

        Returns immediately while the window has room, no penalty is active
        and nobody is queued, otherwise waits in line until the queue
        processor grants a slot.

        Raises:
            RateLimiterDisposedError: If the limiter is disposed while waiting
        """
        if self._disposed:
            return

        self._prune()

        if (
            not self._waiters
            and not self.is_penalized
            and len(self._timestamps) < self.max_requests
        ):
            self._grant()
            return

        self._rate_limit_hits += 1
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)

        logger.debug(
            "Rate limit reached, request queued",
            queue_size=len(self._waiters),
            current_usage=len(self._timestamps)
        )

        self._ensure_processor()
        await waiter

    def penalize(self, duration: float) -> None:
        """
        Pause all requests for `duration` seconds (e.g. a 429 Retry-After).

        Never shortens a longer penalty already in effect.
        """
        until = time.monotonic() + duration
        if until > self._penalty_until:
            self._penalty_until = until
            self._penalties += 1

            log_system_event(
                logger,
                EventType.RATE_LIMIT_WARNING,
                "Rate limiter penalized",
                duration_seconds=duration,
                queue_size=len(self._waiters)
            )

    @property
    def queue_size(self) -> int:
        """Number of requests currently queued."""
        return len(self._waiters)

    @property
    def current_usage(self) -> int:
        """Number of requests granted in the current window."""
        self._prune()
        return len(self._timestamps)

    @property
    def is_penalized(self) -> bool:
        """Whether a penalty window is active."""
        return time.monotonic() < self._penalty_until

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Reject every queued request and stop throttling for good."""
        if self._disposed:
            return
        self._disposed = True

        rejected = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(RateLimiterDisposedError("RateLimiter disposed"))
                rejected += 1

        if self._processor is not None and not self._processor.done():
            self._processor.cancel()
        self._processor = None

        logger.debug("Rate limiter disposed", rejected=rejected)

    def get_stats(self) -> Dict:
        """
        Get rate limiter statistics.

        Returns:
            Dict with statistics
        """
        return {
            'elapsed_seconds': time.monotonic() - self._start_time,
            'total_requests': self._request_count,
            'rate_limit_hits': self._rate_limit_hits,
            'penalties': self._penalties,
            'current_usage': self.current_usage,
            'queue_size': self.queue_size,
            'is_penalized': self.is_penalized,
            'max_requests': self.max_requests,
            'window_seconds': self.window
        }

    def _grant(self) -> None:
        self._timestamps.append(time.monotonic())
        self._request_count += 1

    def _prune(self) -> None:
        """Drop timestamps that have left the window."""
        cutoff = time.monotonic() - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _ensure_processor(self) -> None:
        if self._processor is None or self._processor.done():
            self._processor = asyncio.create_task(self._process_queue())

    async def _process_queue(self) -> None:
        """Grant queued requests one slot at a time, in arrival order."""
        while self._waiters and not self._disposed:
            remaining = self._penalty_until - time.monotonic()
            if remaining > 0:
                await asyncio.sleep(remaining)
                continue

            self._prune()

            if len(self._timestamps) < self.max_requests:
                waiter = self._waiters.popleft()
                # Skip callers that gave up (cancelled) while queued
                if waiter.done():
                    continue
                self._grant()
                waiter.set_result(None)
            else:
                # Sleep until the oldest grant leaves the window
                wait = self._timestamps[0] + self.window - time.monotonic()
                if wait > 0:
                    await asyncio.sleep(wait)
