"""Engagement scoring for posts and the time window that admits them."""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from bsky_topten.models.records import PostCandidate


@dataclass(frozen=True)
class ScoreWeights:
    """Points awarded per unit of each engagement counter."""

    like: int = 1
    reply: int = 5
    repost: int = 3
    quote: int = 4


DEFAULT_WEIGHTS = ScoreWeights()


def score(reply: int, repost: int, like: int, quote: int, weights: ScoreWeights = DEFAULT_WEIGHTS) -> int:
    """
    Compute the ranking score of a post from its raw engagement counters.

    Args:
        reply: Number of replies
        repost: Number of reposts
        like: Number of likes
        quote: Number of quote posts
        weights: Weights in effect for this pass

    Returns:
        Weighted integer sum of the counters

    Raises:
        ValueError: If any counter is negative
    """
    counters = {"reply": reply, "repost": repost, "like": like, "quote": quote}
    for name, value in counters.items():
        if value < 0:
            raise ValueError(f"{name} count must be non-negative, got {value}")

    return (
        like * weights.like
        + reply * weights.reply
        + repost * weights.repost
        + quote * weights.quote
    )


class WindowPosition(enum.Enum):
    TOO_OLD = "too_old"
    ADMITTED = "admitted"
    TOO_NEW = "too_new"


@dataclass(frozen=True)
class AdmissionWindow:
    """
    Closed time range ``[start, end]`` a post's publish time must fall in.

    Feeds are returned newest first, so a post older than ``start`` means
    nothing further down that feed can be admitted.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("AdmissionWindow bounds must be timezone-aware")
        if self.start > self.end:
            raise ValueError("AdmissionWindow start must not be after end")

    @classmethod
    def ending_at(cls, now: datetime, lag_hours: int = 24, span_hours: int = 1) -> "AdmissionWindow":
        """Window of ``span_hours`` closing ``lag_hours`` before ``now``."""
        end = now - timedelta(hours=lag_hours)
        return cls(start=end - timedelta(hours=span_hours), end=end)

    def classify(self, published_at: datetime) -> WindowPosition:
        if published_at < self.start:
            return WindowPosition.TOO_OLD
        if published_at > self.end:
            return WindowPosition.TOO_NEW
        return WindowPosition.ADMITTED


def build_post_candidate(
    account_id: int,
    uri: str,
    cid: str,
    created_at: datetime,
    reply_count: int = 0,
    repost_count: int = 0,
    like_count: int = 0,
    quote_count: int = 0,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> PostCandidate:
    """Build a post candidate with its score fixed at the current weights."""
    total = score(reply_count, repost_count, like_count, quote_count, weights)
    return {
        "account_id": account_id,
        "uri": uri,
        "cid": cid,
        "created_at": created_at.astimezone(timezone.utc),
        "reply_count": reply_count,
        "repost_count": repost_count,
        "like_count": like_count,
        "quote_count": quote_count,
        "total_score": total,
    }
