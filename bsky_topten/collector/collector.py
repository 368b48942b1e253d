"""Cursor-paginated collectors for the social graph and author feeds."""

import asyncio
import logging
from typing import List, Optional

from bsky_topten.bsky.client import BskyClient
from bsky_topten.bsky.types import FEED_FILTER_WITH_REPLIES
from bsky_topten.collector.results import PassReport, UnitResult
from bsky_topten.errors import BskyApiError, BskyError, MalformedRecordError
from bsky_topten.models.mapping import (
    entry_cid,
    feed_entry_to_candidate,
    followers_to_candidates,
    is_repost,
    parse_published_at,
)
from bsky_topten.models.records import Account, AccountCandidate, PostCandidate
from bsky_topten.scoring.engine import AdmissionWindow, WindowPosition
from bsky_topten.storage.base_store import AccountPostStore

logger = logging.getLogger(__name__)


class SocialCollector:
    """Collector for tracked accounts and their recent posts."""

    def __init__(
        self,
        client: BskyClient,
        page_size: int = 100,
        feed_concurrency: int = 8,
        relation: str = "followers",
        prometheus_exporter=None,
    ):
        """
        Initialize the collector.

        Args:
            client: Bluesky XRPC client
            page_size: Items requested per page (max 100)
            feed_concurrency: Maximum author feeds fetched at the same time
            relation: Graph relation of the source actor to track (``followers`` or ``follows``)
            prometheus_exporter: Optional Prometheus metrics exporter
        """
        if feed_concurrency <= 0:
            raise ValueError("feed_concurrency must be greater than 0")

        self.client = client
        self.page_size = page_size
        self.feed_concurrency = feed_concurrency
        self.relation = relation
        self.prometheus_exporter = prometheus_exporter

    async def collect_accounts(self, actor: str) -> List[AccountCandidate]:
        """
        Collect every account in ``actor``'s follower (or follows) list.

        Malformed descriptors are dropped; a remote failure aborts the whole
        listing, since a partial list cannot be told apart from a complete one.

        Args:
            actor: Handle or DID of the source account

        Returns:
            All account candidates, in listing order

        Raises:
            BskyError: If any page fails
        """
        candidates: List[AccountCandidate] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            descriptors, cursor = await self.client.list_followers(
                actor, limit=self.page_size, cursor=cursor, relation=self.relation
            )
            pages += 1
            candidates.extend(followers_to_candidates(descriptors))

            if not cursor:
                break

        logger.info(f"Collected {len(candidates)} accounts from {self.relation} of {actor} ({pages} pages)")
        if self.prometheus_exporter:
            self.prometheus_exporter.record_accounts_ingested(len(candidates))
        return candidates

    async def collect_author_posts(
        self,
        account: Account,
        window: AdmissionWindow,
    ) -> UnitResult[List[PostCandidate]]:
        """
        Collect and score an account's posts published inside ``window``.

        Pagination stops at the first post older than the window or when the
        cursor runs out. A remote failure ends the loop early; posts admitted
        before the failure are kept in the (failed) result.

        Args:
            account: Tracked account
            window: Admission window for this pass

        Returns:
            Unit result keyed by DID, carrying the admitted post candidates
        """
        posts: List[PostCandidate] = []
        cursor: Optional[str] = None

        try:
            while True:
                entries, cursor = await self.client.list_author_feed(
                    account.did, limit=self.page_size, cursor=cursor, filter=FEED_FILTER_WITH_REPLIES
                )

                exhausted = False
                for entry in entries:
                    if entry_cid(entry) is None or is_repost(entry):
                        continue

                    try:
                        published_at = parse_published_at(entry)
                        position = window.classify(published_at)
                        if position is WindowPosition.TOO_OLD:
                            exhausted = True
                            break
                        if position is WindowPosition.TOO_NEW:
                            continue
                        posts.append(feed_entry_to_candidate(entry, account.id, published_at))
                    except MalformedRecordError as e:
                        logger.warning(f"Dropping malformed feed entry for {account.did}: {e}")

                if exhausted or not cursor:
                    break

        except BskyError as e:
            if isinstance(e, BskyApiError):
                logger.error(f"Feed sync failed for {account.did} ({account.handle}): {e.error}: {e.message}")
            else:
                logger.error(f"Feed sync failed for {account.did} ({account.handle}): {e}")
            return UnitResult.failure(account.did, e, value=posts)

        return UnitResult.success(account.did, posts)

    async def collect_all_posts(
        self,
        store: AccountPostStore,
        window: AdmissionWindow,
    ) -> PassReport[List[PostCandidate]]:
        """
        Collect posts for every tracked account, at most ``feed_concurrency`` at a time.

        Accounts are paged out of the store by surrogate key; each page is
        fetched concurrently and fully joined before the next page is read.

        Args:
            store: Storage collaborator providing the tracked accounts
            window: Admission window for this pass

        Returns:
            Report with one unit result per account
        """
        report: PassReport[List[PostCandidate]] = PassReport("author feeds")
        semaphore = asyncio.Semaphore(self.feed_concurrency)

        total = await asyncio.to_thread(store.count_accounts)
        processed = 0
        after_id = 0

        async def bounded(account: Account) -> UnitResult[List[PostCandidate]]:
            async with semaphore:
                return await self.collect_author_posts(account, window)

        while True:
            accounts = await asyncio.to_thread(store.list_accounts, self.page_size, after_id)
            if not accounts:
                break

            after_id = accounts[-1].id
            results = await asyncio.gather(*(bounded(account) for account in accounts))
            report.extend(list(results))

            processed += len(accounts)
            percentage = processed / total * 100 if total else 100.0
            logger.info(f"Synced {processed} accounts of {total} ({percentage:.2f}%)")

        scored = sum(len(posts) for posts in report.values())
        if self.prometheus_exporter:
            self.prometheus_exporter.record_posts_scored(scored)
        return report
