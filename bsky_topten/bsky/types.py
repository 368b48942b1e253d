"""Small value types and record builders for the Bluesky lexicon."""

from dataclasses import dataclass
from typing import Any, Dict

FEED_FILTER_WITH_REPLIES = "posts_with_replies"
POST_COLLECTION = "app.bsky.feed.post"
EMBED_RECORD = "app.bsky.embed.record"

RELATION_ENDPOINTS = {
    "followers": ("app.bsky.graph.getFollowers", "followers"),
    "follows": ("app.bsky.graph.getFollows", "follows"),
}


@dataclass(frozen=True)
class PostRef:
    """Strong reference to a post: its AT URI and content hash."""

    uri: str
    cid: str

    def to_dict(self) -> Dict[str, str]:
        return {"uri": self.uri, "cid": self.cid}


def record_embed(ref: PostRef) -> Dict[str, Any]:
    """Quote-post embed for ``ref``."""
    return {"$type": EMBED_RECORD, "record": ref.to_dict()}
