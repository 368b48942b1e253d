"""Mapping functions to convert Bluesky API descriptors to our data models."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from bsky_topten.errors import MalformedRecordError
from bsky_topten.models.records import AccountCandidate, PostCandidate
from bsky_topten.scoring.engine import DEFAULT_WEIGHTS, ScoreWeights, build_post_candidate

logger = logging.getLogger(__name__)

REASON_REPOST = "app.bsky.feed.defs#reasonRepost"


def follower_to_candidate(descriptor: Dict[str, Any]) -> AccountCandidate:
    """
    Convert a profile descriptor from a follower listing to an AccountCandidate.

    Args:
        descriptor: ``app.bsky.actor.defs#profileView`` JSON object

    Returns:
        An AccountCandidate

    Raises:
        MalformedRecordError: If ``did`` or ``handle`` is missing
    """
    did = descriptor.get("did")
    if not did:
        raise MalformedRecordError("profile descriptor has no did")

    handle = descriptor.get("handle")
    if not handle:
        raise MalformedRecordError(f"profile {did} has no handle")

    return {
        "did": did,
        "handle": handle,
        "display_name": descriptor.get("displayName") or None,
    }


def followers_to_candidates(descriptors: List[Dict[str, Any]]) -> List[AccountCandidate]:
    """
    Convert a page of profile descriptors, dropping malformed ones.

    Args:
        descriptors: Profile descriptors from one page

    Returns:
        List of AccountCandidates for the well-formed descriptors
    """
    candidates = []

    for descriptor in descriptors:
        try:
            candidates.append(follower_to_candidate(descriptor))
        except MalformedRecordError as e:
            logger.warning(f"Dropping malformed profile descriptor: {e}")

    return candidates


def is_repost(entry: Dict[str, Any]) -> bool:
    """True if the feed entry is a repost of someone else's content."""
    reason = entry.get("reason") or {}
    return reason.get("$type") == REASON_REPOST


def entry_cid(entry: Dict[str, Any]) -> Optional[str]:
    return (entry.get("post") or {}).get("cid") or None


def parse_published_at(entry: Dict[str, Any]) -> datetime:
    """
    Parse the ``createdAt`` of a feed entry's record as an aware UTC datetime.

    Raises:
        MalformedRecordError: If the timestamp is missing or unparseable
    """
    post = entry.get("post") or {}
    record = post.get("record") or {}
    raw = record.get("createdAt")
    if not raw:
        raise MalformedRecordError(f"post {post.get('uri')} has no createdAt")

    try:
        published_at = date_parser.isoparse(raw)
    except (ValueError, OverflowError) as e:
        raise MalformedRecordError(f"post {post.get('uri')} has invalid createdAt {raw!r}") from e

    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return published_at.astimezone(timezone.utc)


def _counter(post: Dict[str, Any], key: str) -> int:
    value = post.get(key)
    return int(value) if value is not None else 0


def feed_entry_to_candidate(
    entry: Dict[str, Any],
    account_id: int,
    published_at: Optional[datetime] = None,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> PostCandidate:
    """
    Convert an author-feed entry into a scored PostCandidate.

    Args:
        entry: ``app.bsky.feed.defs#feedViewPost`` JSON object
        account_id: Surrogate key of the owning account
        published_at: Already parsed publish time, parsed from the entry if omitted
        weights: Score weights in effect

    Returns:
        A PostCandidate with its total score computed
    """
    post = entry.get("post") or {}
    cid = post.get("cid")
    uri = post.get("uri")
    if not cid or not uri:
        raise MalformedRecordError(f"feed entry is missing uri or cid: {uri!r}")

    if published_at is None:
        published_at = parse_published_at(entry)

    try:
        return build_post_candidate(
            account_id=account_id,
            uri=uri,
            cid=cid,
            created_at=published_at,
            reply_count=_counter(post, "replyCount"),
            repost_count=_counter(post, "repostCount"),
            like_count=_counter(post, "likeCount"),
            quote_count=_counter(post, "quoteCount"),
            weights=weights,
        )
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"post {uri} has invalid engagement counters: {e}") from e
