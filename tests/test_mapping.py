"""Tests for the mapping module."""

import unittest
from datetime import datetime, timezone

from bsky_topten.errors import MalformedRecordError
from bsky_topten.models.mapping import (
    entry_cid,
    feed_entry_to_candidate,
    follower_to_candidate,
    followers_to_candidates,
    is_repost,
    parse_published_at,
)


def make_entry(uri="at://did:plc:a/app.bsky.feed.post/1", cid="bafy1",
               created_at="2026-10-16T11:30:00.000Z", **counts):
    post = {"uri": uri, "cid": cid, "record": {"text": "hi", "createdAt": created_at}}
    post.update(counts)
    return {"post": post}


class TestFollowerMapping(unittest.TestCase):
    """Test cases for profile descriptor mapping."""

    def test_follower_to_candidate(self):
        candidate = follower_to_candidate({
            "did": "did:plc:alice",
            "handle": "alice.bsky.social",
            "displayName": "Alice",
            "avatar": "https://cdn/a.jpg",
        })
        self.assertEqual(candidate, {
            "did": "did:plc:alice",
            "handle": "alice.bsky.social",
            "display_name": "Alice",
        })

    def test_empty_display_name_becomes_none(self):
        candidate = follower_to_candidate({"did": "did:plc:a", "handle": "a.test", "displayName": ""})
        self.assertIsNone(candidate["display_name"])

    def test_missing_did_raises(self):
        with self.assertRaises(MalformedRecordError):
            follower_to_candidate({"handle": "a.test"})

    def test_missing_handle_raises(self):
        with self.assertRaises(MalformedRecordError):
            follower_to_candidate({"did": "did:plc:a"})

    def test_malformed_descriptors_dropped_from_page(self):
        candidates = followers_to_candidates([
            {"did": "did:plc:a", "handle": "a.test"},
            {"handle": "nodid.test"},
            {"did": "did:plc:c", "handle": "c.test"},
        ])
        self.assertEqual([c["did"] for c in candidates], ["did:plc:a", "did:plc:c"])


class TestFeedEntryMapping(unittest.TestCase):
    """Test cases for author feed entry mapping."""

    def test_feed_entry_to_candidate(self):
        entry = make_entry(replyCount=2, repostCount=1, likeCount=10, quoteCount=1)
        candidate = feed_entry_to_candidate(entry, account_id=3)

        self.assertEqual(candidate["account_id"], 3)
        self.assertEqual(candidate["uri"], "at://did:plc:a/app.bsky.feed.post/1")
        self.assertEqual(candidate["cid"], "bafy1")
        self.assertEqual(candidate["created_at"], datetime(2026, 10, 16, 11, 30, tzinfo=timezone.utc))
        self.assertEqual(candidate["total_score"], 27)

    def test_missing_counters_default_to_zero(self):
        candidate = feed_entry_to_candidate(make_entry(likeCount=4), account_id=1)
        self.assertEqual(candidate["reply_count"], 0)
        self.assertEqual(candidate["quote_count"], 0)
        self.assertEqual(candidate["total_score"], 4)

    def test_negative_counter_is_malformed(self):
        with self.assertRaises(MalformedRecordError):
            feed_entry_to_candidate(make_entry(likeCount=-3), account_id=1)

    def test_parse_published_at_with_offset(self):
        entry = make_entry(created_at="2026-10-16T14:30:00+03:00")
        self.assertEqual(parse_published_at(entry), datetime(2026, 10, 16, 11, 30, tzinfo=timezone.utc))

    def test_naive_timestamp_treated_as_utc(self):
        entry = make_entry(created_at="2026-10-16T11:30:00")
        self.assertEqual(parse_published_at(entry).tzinfo, timezone.utc)

    def test_unparseable_timestamp_raises(self):
        with self.assertRaises(MalformedRecordError):
            parse_published_at(make_entry(created_at="yesterday-ish"))

    def test_missing_timestamp_raises(self):
        with self.assertRaises(MalformedRecordError):
            parse_published_at({"post": {"uri": "at://x", "cid": "c", "record": {}}})

    def test_is_repost(self):
        entry = make_entry()
        self.assertFalse(is_repost(entry))

        entry["reason"] = {"$type": "app.bsky.feed.defs#reasonRepost", "by": {"did": "did:plc:b"}}
        self.assertTrue(is_repost(entry))

        entry["reason"] = {"$type": "app.bsky.feed.defs#reasonPin"}
        self.assertFalse(is_repost(entry))

    def test_entry_cid(self):
        self.assertEqual(entry_cid(make_entry(cid="bafy9")), "bafy9")
        self.assertIsNone(entry_cid(make_entry(cid="")))
        self.assertIsNone(entry_cid({}))


if __name__ == "__main__":
    unittest.main()
