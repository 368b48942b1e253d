"""Error handling and retry logic for Bluesky XRPC requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

from bsky_topten.collector.rate_limiter import RateLimiter
from bsky_topten.errors import BskyApiError, BskyTransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]


class ConsecutiveErrorTracker:
    """Tracker for consecutive server errors with threshold checking."""

    def __init__(self, threshold: int, prometheus_exporter=None):
        """
        Initialize the error tracker.

        Args:
            threshold: Maximum number of consecutive errors allowed
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.threshold = threshold
        self.consecutive_errors = 0
        self.prometheus_exporter = prometheus_exporter

    def record_error(self) -> None:
        """Record an error occurrence and increment the counter."""
        self.consecutive_errors += 1
        logger.warning(f"Consecutive errors: {self.consecutive_errors}/{self.threshold}")

        if self.prometheus_exporter:
            self.prometheus_exporter.set_consecutive_errors(self.consecutive_errors)

    def record_success(self) -> None:
        """Record a successful request, resetting the consecutive error count."""
        if self.consecutive_errors > 0:
            logger.info(f"Resetting consecutive error counter (was {self.consecutive_errors})")
            self.consecutive_errors = 0

            if self.prometheus_exporter:
                self.prometheus_exporter.set_consecutive_errors(0)

    def should_abort(self) -> bool:
        """
        Check if we should abort due to too many consecutive errors.

        Returns:
            True if the failure threshold has been reached
        """
        return self.consecutive_errors >= self.threshold


def with_exponential_backoff(
    max_retries: int = 5,
    initial_backoff: float = 1.0,
    max_backoff: float = 32.0,
    backoff_factor: float = 2.0,
    error_tracker: Optional[ConsecutiveErrorTracker] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async XRPC calls with exponential backoff.

    When ``error_tracker`` or ``rate_limiter`` are not given, the decorated
    method's instance attributes of the same name are used.

    Args:
        max_retries: Maximum number of retry attempts
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries
        error_tracker: Optional tracker for consecutive server errors
        rate_limiter: Optional rate limiter for handling 429 responses

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            owner = args[0] if args else None
            tracker = error_tracker or getattr(owner, "error_tracker", None)
            limiter = rate_limiter or getattr(owner, "rate_limiter", None)

            retries = 0
            backoff = initial_backoff

            while True:
                try:
                    result = await func(*args, **kwargs)

                    if tracker:
                        tracker.record_success()

                    return result

                except BskyApiError as e:
                    if e.status == 429 and limiter:
                        if retries >= max_retries:
                            logger.error(f"Max retries ({max_retries}) exceeded while rate limited: {e}")
                            raise
                        await limiter.handle_429(e.retry_after)
                        retries += 1
                        continue

                    if not e.is_retryable:
                        logger.warning(f"Client error {e.status}: {e.error}: {e.message}")
                        raise

                    if tracker:
                        tracker.record_error()
                        if tracker.should_abort():
                            logger.critical(
                                f"Aborting after {tracker.consecutive_errors} "
                                f"consecutive server errors"
                            )
                            raise

                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    logger.warning(
                        f"Server error {e.status}: {e}. "
                        f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                    )

                except BskyTransportError as e:
                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    logger.warning(
                        f"Transport error: {e}. "
                        f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                    )

                await asyncio.sleep(backoff)
                retries += 1
                backoff = min(backoff * backoff_factor, max_backoff)

        return cast(AsyncFunc[T], wrapper)
    return decorator
