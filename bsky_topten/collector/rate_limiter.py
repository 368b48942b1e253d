"""Rate limiting functionality for Bluesky XRPC requests."""

import asyncio
import logging
import time
from typing import Any, Mapping, Optional

from bsky_topten.config import RateLimitConfig

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rate limiter for Bluesky XRPC requests.

    Spaces requests to stay under a fixed requests-per-minute budget and
    honours the ``ratelimit-*`` headers returned by the PDS and AppView.
    Shared by every concurrent feed fetch, so ``pre_request`` serializes on a lock.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Initialize the rate limiter with configuration.

        Args:
            config: Rate limiting configuration
        """
        self.config = config
        self.remaining_calls: Optional[int] = None
        self.reset_timestamp: Optional[float] = None
        self.last_request_time = 0.0
        self._lock = asyncio.Lock()

        self.min_interval = 60.0 / self.config.max_requests_per_minute

    async def pre_request(self) -> None:
        """
        Check rate limits before making a request and sleep if necessary.

        This should be called before each XRPC request.
        """
        async with self._lock:
            now = time.time()
            elapsed = now - self.last_request_time
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)

            if (self.remaining_calls is not None and
                    self.reset_timestamp is not None and
                    self.remaining_calls < self.config.min_remaining_calls):

                wait_time = self.reset_timestamp - time.time() + self.config.sleep_buffer_sec
                if wait_time > 0:
                    logger.info(f"Rate limit approaching: {self.remaining_calls} calls remaining. "
                                f"Sleeping for {wait_time:.2f}s until reset.")
                    await asyncio.sleep(wait_time)
                self.remaining_calls = None
                self.reset_timestamp = None

            self.last_request_time = time.time()

    def update_from_headers(self, headers: Mapping[str, Any]) -> None:
        """
        Update rate limit tracking from XRPC response headers.

        Args:
            headers: Response headers (``ratelimit-remaining``, ``ratelimit-reset`` as epoch seconds)
        """
        lowered = {str(k).lower(): v for k, v in headers.items()}

        if "ratelimit-remaining" in lowered:
            try:
                self.remaining_calls = int(float(lowered["ratelimit-remaining"]))
            except (ValueError, TypeError):
                logger.warning("Failed to parse ratelimit-remaining header")

        if "ratelimit-reset" in lowered:
            try:
                self.reset_timestamp = float(lowered["ratelimit-reset"])
            except (ValueError, TypeError):
                logger.warning("Failed to parse ratelimit-reset header")

        if self.remaining_calls is not None and self.reset_timestamp is not None:
            reset_in = self.reset_timestamp - time.time()
            logger.debug(f"Rate limit status: {self.remaining_calls} calls remaining, "
                         f"reset in {reset_in:.2f}s")

    async def handle_429(self, retry_after: Optional[str] = None) -> None:
        """
        Handle a 429 Too Many Requests response.

        Args:
            retry_after: Value of the Retry-After header, if available
        """
        wait_seconds = 60.0
        if retry_after:
            try:
                wait_seconds = float(retry_after)
            except (ValueError, TypeError):
                pass
        elif self.reset_timestamp is not None:
            wait_seconds = max(0.0, self.reset_timestamp - time.time())

        wait_seconds += self.config.sleep_buffer_sec

        logger.warning(f"Rate limited (429). Waiting for {wait_seconds:.2f}s before retrying.")
        await asyncio.sleep(wait_seconds)

        self.remaining_calls = None
        self.reset_timestamp = None
