"""Daemon loop running the account, post and publication passes on a clock."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from bsky_topten.config import ScheduleConfig
from bsky_topten.pipeline import SyncPipeline

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Upper bound on one sleep so that stop() is noticed promptly
MAX_SLEEP_SEC = 60.0


def next_interval_boundary(now: datetime, interval_sec: int) -> datetime:
    """First multiple of ``interval_sec`` since the epoch strictly after ``now``."""
    elapsed = (now - _EPOCH).total_seconds()
    ticks = int(elapsed // interval_sec) + 1
    return _EPOCH + timedelta(seconds=ticks * interval_sec)


def next_daily_time(now: datetime, hour_utc: int) -> datetime:
    """Next occurrence of ``hour_utc``:00 UTC strictly after ``now``."""
    candidate = now.astimezone(timezone.utc).replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class PassScheduler:
    """
    Runs the scheduled passes until stopped.

    * on startup: account sync (optional),
    * every ``posts_interval_sec`` on the interval boundary: post sync,
    * daily at ``publish_hour_utc``: account sync, then publication.

    When both are due at the same tick the daily passes run first, so the
    working set is published and cleared before the next window is stored.
    A post sync that starts late still uses the window of its boundary, and
    boundaries missed while other passes ran are caught up in order.
    A failed pass is logged and never stops the loop.
    """

    def __init__(
        self,
        config: ScheduleConfig,
        pipeline: SyncPipeline,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.pipeline = pipeline
        self.now = now
        self.sleep = sleep
        self.running = False
        self.next_posts_at: Optional[datetime] = None
        self.next_publish_at: Optional[datetime] = None
        self.stats: Dict[str, int] = {
            "passes_run": 0,
            "passes_failed": 0,
        }

    async def _run_pass(self, name: str, action: Callable[[], Awaitable[object]]) -> bool:
        try:
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats["passes_failed"] += 1
            logger.error(f"Pass '{name}' failed: {e}", exc_info=True)
            return False
        finally:
            self.stats["passes_run"] += 1
        return True

    async def run_account_sync(self) -> bool:
        return await self._run_pass("sync accounts", self.pipeline.sync_accounts)

    async def run_post_sync(self, at: Optional[datetime] = None) -> bool:
        return await self._run_pass("sync posts", lambda: self.pipeline.sync_posts(at=at))

    async def run_daily(self) -> bool:
        """Account sync followed by publication; publication runs even if the sync failed."""
        synced = await self.run_account_sync()
        published = await self._run_pass("publish top posts", self.pipeline.publish_top_ten)
        return synced and published

    def schedule_from(self, now: datetime) -> None:
        self.next_posts_at = next_interval_boundary(now, self.config.posts_interval_sec)
        self.next_publish_at = next_daily_time(now, self.config.publish_hour_utc)

    def due_passes(self, now: datetime) -> List[str]:
        due = []
        if self.next_publish_at is not None and now >= self.next_publish_at:
            due.append("daily")
        if self.next_posts_at is not None and now >= self.next_posts_at:
            due.append("posts")
        return due

    async def tick(self) -> List[str]:
        """
        Run every pass that is due now and reschedule it.

        Returns:
            Names of the passes that ran
        """
        due = self.due_passes(self.now())
        posts_due_at = self.next_posts_at

        if "daily" in due:
            await self.run_daily()
            self.next_publish_at = next_daily_time(self.now(), self.config.publish_hour_utc)
        if "posts" in due:
            # Window follows the due boundary, not the start time
            await self.run_post_sync(at=posts_due_at)
            self.next_posts_at = posts_due_at + timedelta(seconds=self.config.posts_interval_sec)

        return due

    async def run_daemon(self) -> None:
        """Run passes on schedule until ``stop()`` is called or the task is cancelled."""
        self.running = True

        if self.config.sync_on_startup:
            await self.run_account_sync()

        self.schedule_from(self.now())
        logger.info(
            f"Scheduler started: next post sync at {self.next_posts_at.isoformat()}, "
            f"next publication at {self.next_publish_at.isoformat()}"
        )

        try:
            while self.running:
                await self.tick()

                wake_at = min(self.next_posts_at, self.next_publish_at)
                delay = (wake_at - self.now()).total_seconds()
                if delay > 0:
                    await self.sleep(min(delay, MAX_SLEEP_SEC))
        except asyncio.CancelledError:
            logger.info("Scheduler cancelled")
            self.running = False
        finally:
            logger.info(
                f"Scheduler stopped after {self.stats['passes_run']} passes "
                f"({self.stats['passes_failed']} failed)"
            )

    def stop(self) -> None:
        """Stop the loop after the current pass."""
        logger.info("Stopping scheduler")
        self.running = False
