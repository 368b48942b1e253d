"""
Tests for SQLAlchemyStore against a temporary SQLite database.

Covers the storage operations the passes rely on: DID lookup, batch insert
atomicity, keyset paging, ranking and clearing.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from bsky_topten.errors import StorageError
from bsky_topten.models.orm import AccountORM
from bsky_topten.scoring.engine import build_post_candidate
from bsky_topten.storage.database import get_db

CREATED = datetime(2026, 10, 16, 11, 30, tzinfo=timezone.utc)


def accounts(*names):
    return [{"did": f"did:plc:{n}", "handle": f"{n}.test", "display_name": None} for n in names]


def post(account_id, n, likes):
    return build_post_candidate(
        account_id, f"at://did:plc:x/app.bsky.feed.post/{n}", f"bafy{n}", CREATED, like_count=likes
    )


class TestAccounts:
    """Account storage operations."""

    def test_insert_and_find_by_did(self, store):
        assert store.insert_accounts(accounts("a", "b", "c")) == 3

        found = store.find_accounts_by_did(["did:plc:a", "did:plc:c", "did:plc:missing"])

        assert sorted(a.did for a in found) == ["did:plc:a", "did:plc:c"]
        assert all(a.id > 0 for a in found)
        assert all(a.created_at.tzinfo is not None for a in found)

    def test_find_handles_large_did_lists(self, store):
        store.insert_accounts(accounts(*[f"u{i}" for i in range(1200)]))

        found = store.find_accounts_by_did([f"did:plc:u{i}" for i in range(1200)])

        assert len(found) == 1200

    def test_batch_insert_is_all_or_nothing(self, store):
        store.insert_accounts(accounts("a"))

        with pytest.raises(StorageError):
            store.insert_accounts(accounts("b", "a", "c"))

        assert store.count_accounts() == 1

    def test_update_account(self, store, session_factory):
        store.insert_accounts(accounts("a"))
        account = store.find_accounts_by_did(["did:plc:a"])[0]

        assert store.update_account(account.id, "renamed.test", "Renamed") is True
        assert store.update_account(99999, "nobody.test", None) is False

        with get_db(session_factory) as db:
            row = db.scalars(select(AccountORM).where(AccountORM.id == account.id)).one()
            assert (row.did, row.handle, row.display_name) == ("did:plc:a", "renamed.test", "Renamed")

    def test_list_accounts_keyset_paging(self, store):
        store.insert_accounts(accounts("a", "b", "c", "d", "e"))

        first = store.list_accounts(limit=2)
        second = store.list_accounts(limit=2, after_id=first[-1].id)
        third = store.list_accounts(limit=2, after_id=second[-1].id)
        rest = store.list_accounts(limit=2, after_id=third[-1].id)

        ids = [a.id for a in first + second + third]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5
        assert rest == []


class TestPosts:
    """Post storage, ranking and clearing."""

    @pytest.fixture
    def account_ids(self, store):
        store.insert_accounts(accounts("a", "b"))
        return {a.handle: a.id for a in store.list_accounts(limit=10)}

    def test_top_posts_ordering_and_limit(self, store, account_ids):
        a, b = account_ids["a.test"], account_ids["b.test"]
        store.insert_posts([post(a, 1, 5), post(b, 2, 50), post(a, 3, 20), post(b, 4, 0)])

        ranked = store.top_posts_by_score(2)

        assert [p.total_score for p, _ in ranked] == [50, 20]
        assert [acc.handle for _, acc in ranked] == ["b.test", "a.test"]
        assert ranked[0][0].created_at == CREATED

    def test_zero_score_posts_never_ranked(self, store, account_ids):
        store.insert_posts([post(account_ids["a.test"], 1, 0)])

        assert store.top_posts_by_score(10) == []

    def test_delete_all_posts(self, store, account_ids):
        store.insert_posts([post(account_ids["a.test"], n, n) for n in range(1, 4)])

        assert store.delete_all_posts() == 3
        assert store.count_posts() == 0
        assert store.count_accounts() == 2

    def test_post_with_unknown_account_rejected(self, store, account_ids):
        with pytest.raises(StorageError):
            store.insert_posts([post(account_ids["a.test"], 1, 1), post(424242, 2, 2)])

        assert store.count_posts() == 0
