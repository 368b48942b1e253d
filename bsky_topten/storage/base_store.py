"""Defines the storage protocol the sync passes depend on."""

from typing import Iterable, List, Optional, Protocol, Tuple

from bsky_topten.models.records import Account, AccountCandidate, PostCandidate, PostRecord


class AccountPostStore(Protocol):
    """
    Storage collaborator for accounts and scored posts.

    Every method is synchronous and opens its own session, so callers may
    run independent calls concurrently on worker threads.
    """

    def find_accounts_by_did(self, dids: Iterable[str]) -> List[Account]:
        """Load persisted accounts whose DID is in ``dids``."""
        ...

    def insert_accounts(self, candidates: List[AccountCandidate]) -> int:
        """Insert all candidates in one transaction; all-or-nothing."""
        ...

    def update_account(self, account_id: int, handle: str, display_name: Optional[str]) -> bool:
        """Update the mutable fields of one account by surrogate key."""
        ...

    def insert_posts(self, candidates: List[PostCandidate]) -> int:
        """Insert all post candidates in one transaction; all-or-nothing."""
        ...

    def delete_all_posts(self) -> int:
        """Clear the working post set."""
        ...

    def count_accounts(self) -> int:
        ...

    def list_accounts(self, limit: int, after_id: int = 0) -> List[Account]:
        """Accounts with ``id > after_id`` in ascending id order."""
        ...

    def top_posts_by_score(self, n: int) -> List[Tuple[PostRecord, Account]]:
        """Up to ``n`` posts with score > 0, highest first, with their accounts."""
        ...
