"""Tests for top-post publication."""

import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from bsky_topten.bsky.client import BskyClient
from bsky_topten.bsky.richtext import CandidateSpan, SpanKind
from bsky_topten.bsky.session import BskySession
from bsky_topten.bsky.types import PostRef
from bsky_topten.config import PublicationConfig
from bsky_topten.errors import BskyApiError, BskyTransportError, StorageError
from bsky_topten.models.records import Account, PostRecord
from bsky_topten.publication.publisher import TopTenPublisher, compose_message

SESSION = BskySession(did="did:plc:bot", handle="bot.test", access_jwt="a", refresh_jwt="r")


def ranked_post(n: int, score: int, display_name=None):
    account = Account(id=n, did=f"did:plc:{n}", handle=f"user{n}.test", display_name=display_name)
    post = PostRecord(
        id=n,
        account_id=n,
        uri=f"at://did:plc:{n}/app.bsky.feed.post/{n}",
        cid=f"bafy{n}",
        created_at=datetime(2026, 10, 16, 11, 30, tzinfo=timezone.utc),
        reply_count=0,
        repost_count=0,
        like_count=score,
        quote_count=0,
        total_score=score,
    )
    return post, account


class TestComposeMessage(unittest.TestCase):
    """Test cases for compose_message."""

    def test_uses_display_name(self):
        _, account = ranked_post(1, 10, display_name="Аліса")
        self.assertEqual(compose_message("#Топ10", account), "#Топ10 Аліса")

    def test_falls_back_to_handle(self):
        _, account = ranked_post(1, 10, display_name="")
        self.assertEqual(compose_message("#Топ10", account), "#Топ10 user1.test")


class TestTopTenPublisher(unittest.IsolatedAsyncioTestCase):
    """Test cases for TopTenPublisher.publish_top_ten."""

    def setUp(self):
        self.client = MagicMock(spec=BskyClient)
        self.client.publish = AsyncMock(
            side_effect=lambda session, text, **kwargs: PostRef(uri=f"at://bot/{text}", cid="c")
        )
        self.store = MagicMock()
        self.store.delete_all_posts.return_value = 0
        self.sleep = AsyncMock()
        self.config = PublicationConfig(post_delay_sec=300)
        self.publisher = TopTenPublisher(self.client, self.store, self.config, sleep=self.sleep)

    async def test_empty_ranking_clears_once_and_publishes_nothing(self):
        self.store.top_posts_by_score.return_value = []

        report = await self.publisher.publish_top_ten(SESSION)

        self.assertEqual(len(report), 0)
        self.client.publish.assert_not_awaited()
        self.store.delete_all_posts.assert_called_once()
        self.sleep.assert_not_awaited()

    async def test_publishes_in_rank_order_then_clears_once(self):
        ranked = [ranked_post(1, 50, "First"), ranked_post(2, 30), ranked_post(3, 10, "Third")]
        self.store.top_posts_by_score.return_value = ranked

        report = await self.publisher.publish_top_ten(SESSION)

        self.store.top_posts_by_score.assert_called_once_with(10)
        texts = [call.args[1] for call in self.client.publish.await_args_list]
        self.assertEqual(texts, ["#Топ10 First", "#Топ10 user2.test", "#Топ10 Third"])
        self.assertEqual(len(report.succeeded), 3)
        self.store.delete_all_posts.assert_called_once()

    async def test_delay_between_posts_only(self):
        self.store.top_posts_by_score.return_value = [ranked_post(n, 10 - n) for n in range(1, 4)]

        await self.publisher.publish_top_ten(SESSION)

        self.assertEqual(self.sleep.await_count, 2)
        self.sleep.assert_awaited_with(300)

    async def test_quote_embed_and_spans(self):
        self.store.top_posts_by_score.return_value = [ranked_post(7, 42, "Sam")]

        await self.publisher.publish_top_ten(SESSION)

        call = self.client.publish.await_args
        self.assertIs(call.args[0], SESSION)
        self.assertEqual(call.kwargs["embed"], {
            "$type": "app.bsky.embed.record",
            "record": {"uri": "at://did:plc:7/app.bsky.feed.post/7", "cid": "bafy7"},
        })
        self.assertEqual(call.kwargs["spans"], [CandidateSpan(0, 9, SpanKind.TAG, "Топ10")])

    async def test_publish_failure_continues_and_still_clears(self):
        self.store.top_posts_by_score.return_value = [ranked_post(n, 10 - n) for n in range(1, 4)]
        self.client.publish.side_effect = [
            PostRef(uri="at://bot/1", cid="c1"),
            BskyApiError(400, "InvalidRequest", "Record/embed is invalid"),
            PostRef(uri="at://bot/3", cid="c3"),
        ]

        report = await self.publisher.publish_top_ten(SESSION)

        self.assertEqual(self.client.publish.await_count, 3)
        self.assertEqual(len(report.succeeded), 2)
        self.assertEqual([r.key for r in report.failed], ["at://did:plc:2/app.bsky.feed.post/2"])
        self.store.delete_all_posts.assert_called_once()

    async def test_malformed_publish_response_continues(self):
        self.store.top_posts_by_score.return_value = [ranked_post(n, 10 - n) for n in range(1, 3)]
        self.client.publish.side_effect = [
            BskyTransportError("com.atproto.repo.createRecord response lacks uri or cid"),
            PostRef(uri="at://bot/2", cid="c2"),
        ]

        report = await self.publisher.publish_top_ten(SESSION)

        self.assertEqual(self.client.publish.await_count, 2)
        self.assertEqual([r.key for r in report.failed], ["at://did:plc:1/app.bsky.feed.post/1"])
        self.assertEqual(len(report.succeeded), 1)
        self.store.delete_all_posts.assert_called_once()

    async def test_unexpected_error_still_clears(self):
        self.store.top_posts_by_score.return_value = [ranked_post(1, 5)]
        self.client.publish.side_effect = RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            await self.publisher.publish_top_ten(SESSION)

        self.store.delete_all_posts.assert_called_once()

    async def test_ranking_failure_aborts_without_clearing(self):
        self.store.top_posts_by_score.side_effect = StorageError("no such table: posts")

        with self.assertRaises(StorageError):
            await self.publisher.publish_top_ten(SESSION)

        self.client.publish.assert_not_awaited()
        self.store.delete_all_posts.assert_not_called()

    async def test_custom_top_n(self):
        publisher = TopTenPublisher(self.client, self.store, PublicationConfig(top_n=3), sleep=self.sleep)
        self.store.top_posts_by_score.return_value = []

        await publisher.publish_top_ten(SESSION)

        self.store.top_posts_by_score.assert_called_once_with(3)


if __name__ == "__main__":
    unittest.main()
