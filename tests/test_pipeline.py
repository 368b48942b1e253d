"""End-to-end tests of the sync passes with a fake remote and a real SQLite store."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bsky_topten.bsky.client import BskyClient
from bsky_topten.bsky.session import BskySession
from bsky_topten.bsky.types import PostRef
from bsky_topten.config import Config
from bsky_topten.errors import BskyApiError
from bsky_topten.pipeline import SyncPipeline

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
SESSION = BskySession(did="did:plc:bot", handle="bot.test", access_jwt="a", refresh_jwt="r")


def feed_entry(did, n, age, likes):
    return {
        "post": {
            "uri": f"at://{did}/app.bsky.feed.post/{n}",
            "cid": f"bafy{n}",
            "record": {"createdAt": (NOW - age).isoformat()},
            "likeCount": likes,
        }
    }


@pytest.fixture
def client():
    client = MagicMock(spec=BskyClient)
    client.list_followers = AsyncMock(side_effect=[
        ([{"did": "did:plc:a", "handle": "a.test", "displayName": "Alice"}], "c1"),
        ([{"did": "did:plc:b", "handle": "b.test"}], None),
    ])

    async def feed(actor, **kwargs):
        if actor == "did:plc:a":
            return [
                feed_entry(actor, 1, timedelta(hours=3), 100),
                feed_entry(actor, 2, timedelta(hours=24, minutes=30), 7),
                feed_entry(actor, 3, timedelta(hours=30), 99),
            ], "more"
        return [feed_entry(actor, 4, timedelta(hours=24, minutes=45), 12)], None

    client.list_author_feed = AsyncMock(side_effect=feed)
    client.ensure_session = AsyncMock(return_value=SESSION)
    client.publish = AsyncMock(return_value=PostRef(uri="at://did:plc:bot/app.bsky.feed.post/new", cid="c"))
    return client


@pytest.fixture
def pipeline(client, store):
    config = Config(handle="bot.test", password="pw")
    config.publication.post_delay_sec = 0
    return SyncPipeline(config, client, store, now=lambda: NOW)


@pytest.mark.asyncio
class TestSyncPipeline:
    """Account sync, post sync and publication against a fake remote."""

    async def test_sync_accounts(self, pipeline, store):
        stats = await pipeline.sync_accounts()

        assert stats.inserted == 2
        assert store.count_accounts() == 2

    async def test_sync_posts_stores_only_window_posts(self, pipeline, store):
        await pipeline.sync_accounts()

        stats = await pipeline.sync_posts()

        assert stats.inserted == 2
        ranked = store.top_posts_by_score(10)
        assert [p.uri[-1] for p, _ in ranked] == ["4", "2"]

    async def test_sync_posts_uses_scheduled_time(self, pipeline, store):
        await pipeline.sync_accounts()

        stats = await pipeline.sync_posts(at=NOW + timedelta(hours=1))

        assert stats.inserted == 0
        assert store.count_posts() == 0

    async def test_sync_accounts_reports_tracked_accounts(self, client, store):
        exporter = MagicMock()
        pipeline = SyncPipeline(Config(), client, store, prometheus_exporter=exporter, now=lambda: NOW)

        await pipeline.sync_accounts()

        exporter.set_tracked_accounts.assert_called_once_with(2)

    async def test_sync_posts_keeps_other_accounts_on_failure(self, pipeline, store, client):
        await pipeline.sync_accounts()
        original = client.list_author_feed.side_effect

        async def feed(actor, **kwargs):
            if actor == "did:plc:a":
                raise BskyApiError(500, "InternalServerError")
            return await original(actor, **kwargs)

        client.list_author_feed.side_effect = feed

        stats = await pipeline.sync_posts()

        assert stats.inserted == 1
        assert store.count_posts() == 1

    async def test_publish_top_ten_clears_working_set(self, pipeline, store, client):
        await pipeline.sync_accounts()
        await pipeline.sync_posts()

        report = await pipeline.publish_top_ten()

        assert len(report.succeeded) == 2
        texts = [call.args[1] for call in client.publish.await_args_list]
        assert texts == ["#Топ10 b.test", "#Топ10 Alice"]
        assert store.count_posts() == 0
        client.ensure_session.assert_awaited_once_with(None)
        assert pipeline.session is SESSION

    async def test_session_reused_between_publications(self, pipeline, client):
        await pipeline.publish_top_ten()
        await pipeline.publish_top_ten()

        assert client.ensure_session.await_args_list[1].args == (SESSION,)


def test_admission_window(pipeline):
    window = pipeline.admission_window()

    assert window.start == NOW - timedelta(hours=25)
    assert window.end == NOW - timedelta(hours=24)


def test_admission_window_anchored_to_given_time(pipeline):
    at = datetime(2026, 10, 17, 13, 0, tzinfo=timezone.utc)

    window = pipeline.admission_window(at)

    assert (window.start, window.end) == (at - timedelta(hours=25), at - timedelta(hours=24))
