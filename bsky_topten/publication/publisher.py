"""Daily publication of the highest-scored posts as quote posts."""

import asyncio
import logging
from typing import Awaitable, Callable

from bsky_topten.bsky.client import BskyClient
from bsky_topten.bsky.richtext import extract_spans
from bsky_topten.bsky.session import BskySession
from bsky_topten.bsky.types import PostRef, record_embed
from bsky_topten.collector.results import PassReport, UnitResult
from bsky_topten.config import PublicationConfig
from bsky_topten.errors import BskyError
from bsky_topten.models.records import Account, PostRecord
from bsky_topten.storage.base_store import AccountPostStore

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def compose_message(label: str, account: Account) -> str:
    """Label followed by the account's display name, or its handle when the name is empty."""
    return f"{label} {account.name}"


class TopTenPublisher:
    """
    Publishes the current top posts, one quote post each, then clears the working set.

    Posts go out strictly in descending score order with a fixed pause
    between them to stay well inside the PDS write limits.
    """

    def __init__(
        self,
        client: BskyClient,
        store: AccountPostStore,
        config: PublicationConfig,
        sleep: SleepFn = asyncio.sleep,
        prometheus_exporter=None,
    ):
        self.client = client
        self.store = store
        self.config = config
        self.sleep = sleep
        self.prometheus_exporter = prometheus_exporter

    async def _publish_one(self, session: BskySession, post: PostRecord, account: Account) -> UnitResult[PostRef]:
        text = compose_message(self.config.label, account)
        spans = extract_spans(text, {account.handle: account.did})
        embed = record_embed(PostRef(uri=post.uri, cid=post.cid))

        try:
            ref = await self.client.publish(session, text, spans=spans, embed=embed)
        except BskyError as e:
            logger.error(f"Failed to publish top post {post.uri} for {account.did}: {e}")
            if self.prometheus_exporter:
                self.prometheus_exporter.record_post_published(False)
            return UnitResult.failure(post.uri, e)

        logger.info(f"Published top post for {account.handle} (score {post.total_score}): {ref.uri}")
        if self.prometheus_exporter:
            self.prometheus_exporter.record_post_published(True)
        return UnitResult.success(post.uri, ref)

    async def publish_top_ten(self, session: BskySession) -> PassReport[PostRef]:
        """
        Publish up to ``top_n`` posts and clear the working post set.

        The clear runs exactly once per pass, whether zero, some or all posts
        were published. If the ranking query itself fails the pass aborts
        before publishing or clearing anything.

        Args:
            session: Authenticated session used for every publish call

        Returns:
            Report with one unit result per post attempted

        Raises:
            StorageError: If the ranking query or the clear fails
        """
        report: PassReport[PostRef] = PassReport("top posts")
        ranked = await asyncio.to_thread(self.store.top_posts_by_score, self.config.top_n)

        try:
            if not ranked:
                logger.info("No scored posts to publish")
                return report

            for index, (post, account) in enumerate(ranked):
                report.add(await self._publish_one(session, post, account))

                if index < len(ranked) - 1 and self.config.post_delay_sec > 0:
                    await self.sleep(self.config.post_delay_sec)
        finally:
            cleared = await asyncio.to_thread(self.store.delete_all_posts)
            logger.info(f"Cleared {cleared} posts from the working set")

        return report
