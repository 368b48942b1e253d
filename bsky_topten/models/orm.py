"""SQLAlchemy ORM models for tracked accounts and scored posts."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import TIMESTAMP


class Base(DeclarativeBase):
    pass


class AccountORM(Base):
    """
    A tracked Bluesky account.

    ``did`` is the natural key used for reconciliation; ``id`` is assigned on
    insert and never reassigned.
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    did: Mapped[str] = mapped_column(Text, nullable=False, unique=True, comment="AT Protocol DID, immutable")
    handle: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    posts: Mapped[list["PostORM"]] = relationship(back_populates="account")

    def __repr__(self) -> str:
        return f"<AccountORM(id={self.id}, did='{self.did}', handle='{self.handle}')>"


class PostORM(Base):
    """
    A post admitted by the scoring window since the last publication.

    ``total_score`` is written once at insert time and never recomputed.
    """
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, comment="Original publish time of the post")
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    uri: Mapped[str] = mapped_column(Text, nullable=False)
    cid: Mapped[str] = mapped_column(Text, nullable=False)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repost_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False)

    account: Mapped[AccountORM] = relationship(back_populates="posts")

    __table_args__ = (
        Index("ix_posts_total_score", "total_score"),
    )

    def __repr__(self) -> str:
        return f"<PostORM(id={self.id}, uri='{self.uri}', total_score={self.total_score})>"
