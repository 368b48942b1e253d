"""The three scheduled passes: account sync, post sync and publication."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, List, Optional

from bsky_topten.bsky.client import BskyClient
from bsky_topten.bsky.session import BskySession
from bsky_topten.bsky.types import PostRef
from bsky_topten.collector.collector import SocialCollector
from bsky_topten.collector.error_handler import ConsecutiveErrorTracker
from bsky_topten.collector.rate_limiter import RateLimiter
from bsky_topten.collector.results import PassReport
from bsky_topten.config import Config
from bsky_topten.models.records import PostCandidate
from bsky_topten.monitoring.timing import PassTimer
from bsky_topten.publication.publisher import TopTenPublisher
from bsky_topten.reconciliation.reconciler import (
    AccountReconciler,
    PostReconciler,
    ReconciliationStats,
)
from bsky_topten.scoring.engine import AdmissionWindow
from bsky_topten.storage.base_store import AccountPostStore
from bsky_topten.storage.database import init_db
from bsky_topten.storage.sqlalchemy_store import SQLAlchemyStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncPipeline:
    """
    Wires the collector, reconcilers and publisher into the scheduled passes.

    Each pass logs its start, a one-line summary and its duration. Passes
    raise on failures that invalidate the whole pass; per-unit failures are
    logged and reported without raising.
    """

    def __init__(
        self,
        config: Config,
        client: BskyClient,
        store: AccountPostStore,
        prometheus_exporter=None,
        now: Callable[[], datetime] = _utc_now,
        publisher: Optional[TopTenPublisher] = None,
    ):
        self.config = config
        self.client = client
        self.store = store
        self.prometheus_exporter = prometheus_exporter
        self.now = now
        self.session: Optional[BskySession] = None

        self.collector = SocialCollector(
            client,
            page_size=config.page_size,
            feed_concurrency=config.feed_concurrency,
            relation=config.relation,
            prometheus_exporter=prometheus_exporter,
        )
        self.account_reconciler = AccountReconciler(store, update_concurrency=config.update_concurrency)
        self.post_reconciler = PostReconciler(store)
        self.publisher = publisher or TopTenPublisher(
            client, store, config.publication, prometheus_exporter=prometheus_exporter
        )

    def admission_window(self, at: Optional[datetime] = None) -> AdmissionWindow:
        """Admission window relative to ``at``, or to the current time when omitted."""
        return AdmissionWindow.ending_at(
            at if at is not None else self.now(),
            lag_hours=self.config.window.lag_hours,
            span_hours=self.config.window.span_hours,
        )

    async def sync_accounts(self) -> ReconciliationStats:
        """Ingest the source actor's graph and reconcile it into the accounts table."""
        with PassTimer("Syncing accounts", logger, self.prometheus_exporter) as timer:
            candidates = await self.collector.collect_accounts(self.config.source_actor)
            stats = await self.account_reconciler.reconcile(candidates)
            timer.summary = stats.summary()

        if self.prometheus_exporter:
            tracked = await asyncio.to_thread(self.store.count_accounts)
            self.prometheus_exporter.set_tracked_accounts(tracked)
        return stats

    async def sync_posts(self, at: Optional[datetime] = None) -> ReconciliationStats:
        """
        Ingest, score and store every tracked account's posts in the admission window.

        Storing starts only after every account's feed has finished or failed.

        Args:
            at: Scheduled time the window is anchored to (defaults to now)
        """
        window = self.admission_window(at)
        with PassTimer("Syncing posts", logger, self.prometheus_exporter) as timer:
            logger.info(f"Admission window: {window.start.isoformat()} .. {window.end.isoformat()}")
            report = await self.collector.collect_all_posts(self.store, window)

            posts: List[PostCandidate] = [post for batch in report.values() for post in batch]
            if report.failed:
                logger.warning(
                    f"{len(report.failed)} of {len(report)} feeds failed; keeping their partial posts"
                )

            stats = await self.post_reconciler.reconcile(posts)
            timer.summary = f"{report.summary()}, {stats.inserted} posts stored"
        return stats

    async def ensure_session(self) -> BskySession:
        """Replace the held session with a valid one (same, refreshed or new)."""
        self.session = await self.client.ensure_session(self.session)
        return self.session

    async def publish_top_ten(self) -> PassReport[PostRef]:
        """Publish the day's top posts and clear the working set."""
        with PassTimer("Posting top posts", logger, self.prometheus_exporter) as timer:
            session = await self.ensure_session()
            report = await self.publisher.publish_top_ten(session)
            timer.summary = report.summary()
        return report


@asynccontextmanager
async def open_pipeline(config: Config, prometheus_exporter=None) -> AsyncIterator[SyncPipeline]:
    """
    Build a pipeline with a fresh database connection and HTTP session.

    Args:
        config: Validated application configuration
        prometheus_exporter: Optional Prometheus metrics exporter
    """
    session_factory = init_db(config.database)
    store = SQLAlchemyStore(session_factory)

    rate_limiter = RateLimiter(config.rate_limit)
    error_tracker = ConsecutiveErrorTracker(config.failure_threshold, prometheus_exporter)
    client = BskyClient(config, rate_limiter, error_tracker, prometheus_exporter)

    try:
        async with client:
            yield SyncPipeline(config, client, store, prometheus_exporter)
    finally:
        session_factory.kw["bind"].dispose()
