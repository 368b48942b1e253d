"""In-memory record shapes exchanged between ingestion, reconciliation and storage."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TypedDict


class AccountCandidate(TypedDict):
    """A tracked account as freshly ingested, pending reconciliation."""
    did: str
    handle: str
    display_name: Optional[str]


class PostCandidate(TypedDict):
    """A scored post as freshly ingested, pending insertion."""
    account_id: int
    uri: str
    cid: str
    created_at: datetime  # original publish time (UTC)
    reply_count: int
    repost_count: int
    like_count: int
    quote_count: int
    total_score: int


@dataclass(frozen=True)
class Account:
    """Detached snapshot of a persisted account."""
    id: int
    did: str
    handle: str
    display_name: Optional[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        """Display name, falling back to the handle when empty or absent."""
        return self.display_name or self.handle


@dataclass(frozen=True)
class PostRecord:
    """Detached snapshot of a persisted post."""
    id: int
    account_id: int
    uri: str
    cid: str
    created_at: datetime
    reply_count: int
    repost_count: int
    like_count: int
    quote_count: int
    total_score: int
