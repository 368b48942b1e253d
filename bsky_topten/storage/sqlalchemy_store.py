"""SQLAlchemy implementation of the account and post store."""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import sessionmaker

from bsky_topten.models.orm import AccountORM, PostORM
from bsky_topten.models.records import Account, AccountCandidate, PostCandidate, PostRecord
from bsky_topten.storage.database import get_db

logger = logging.getLogger(__name__)

# Stays under SQLite's bound-parameter limit
IN_CLAUSE_CHUNK = 500


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back naive; they were written as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def account_from_orm(row: AccountORM) -> Account:
    return Account(
        id=row.id,
        did=row.did,
        handle=row.handle,
        display_name=row.display_name,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def post_from_orm(row: PostORM) -> PostRecord:
    return PostRecord(
        id=row.id,
        account_id=row.account_id,
        uri=row.uri,
        cid=row.cid,
        created_at=_as_utc(row.created_at),
        reply_count=row.reply_count,
        repost_count=row.repost_count,
        like_count=row.like_count,
        quote_count=row.quote_count,
        total_score=row.total_score,
    )


class SQLAlchemyStore:
    """Account and post storage backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        """
        Args:
            session_factory: Factory from ``init_db``; each call opens its own session
        """
        self.session_factory = session_factory

    def find_accounts_by_did(self, dids: Iterable[str]) -> List[Account]:
        unique = list(dict.fromkeys(dids))
        accounts: List[Account] = []

        with get_db(self.session_factory) as db:
            for i in range(0, len(unique), IN_CLAUSE_CHUNK):
                chunk = unique[i:i + IN_CLAUSE_CHUNK]
                rows = db.scalars(select(AccountORM).where(AccountORM.did.in_(chunk))).all()
                accounts.extend(account_from_orm(row) for row in rows)

        return accounts

    def insert_accounts(self, candidates: List[AccountCandidate]) -> int:
        if not candidates:
            return 0

        values = [
            {"did": c["did"], "handle": c["handle"], "display_name": c.get("display_name")}
            for c in candidates
        ]
        with get_db(self.session_factory) as db:
            db.execute(insert(AccountORM), values)

        logger.debug(f"Inserted {len(values)} accounts")
        return len(values)

    def update_account(self, account_id: int, handle: str, display_name: Optional[str]) -> bool:
        with get_db(self.session_factory) as db:
            result = db.execute(
                update(AccountORM)
                .where(AccountORM.id == account_id)
                .values(handle=handle, display_name=display_name, updated_at=func.now())
            )
            return result.rowcount > 0

    def insert_posts(self, candidates: List[PostCandidate]) -> int:
        if not candidates:
            return 0

        values = [dict(c) for c in candidates]
        with get_db(self.session_factory) as db:
            db.execute(insert(PostORM), values)

        logger.debug(f"Inserted {len(values)} posts")
        return len(values)

    def delete_all_posts(self) -> int:
        with get_db(self.session_factory) as db:
            result = db.execute(delete(PostORM))
            return result.rowcount or 0

    def count_accounts(self) -> int:
        with get_db(self.session_factory) as db:
            return db.scalar(select(func.count()).select_from(AccountORM)) or 0

    def count_posts(self) -> int:
        with get_db(self.session_factory) as db:
            return db.scalar(select(func.count()).select_from(PostORM)) or 0

    def list_accounts(self, limit: int, after_id: int = 0) -> List[Account]:
        with get_db(self.session_factory) as db:
            rows = db.scalars(
                select(AccountORM)
                .where(AccountORM.id > after_id)
                .order_by(AccountORM.id)
                .limit(limit)
            ).all()
            return [account_from_orm(row) for row in rows]

    def top_posts_by_score(self, n: int) -> List[Tuple[PostRecord, Account]]:
        with get_db(self.session_factory) as db:
            rows = db.execute(
                select(PostORM, AccountORM)
                .join(AccountORM, PostORM.account_id == AccountORM.id)
                .where(PostORM.total_score > 0)
                .order_by(PostORM.total_score.desc(), PostORM.id)
                .limit(n)
            ).all()
            return [(post_from_orm(post), account_from_orm(account)) for post, account in rows]
