"""Relational storage for tracked accounts and scored posts."""

from .base_store import AccountPostStore
from .database import get_db, init_db
from .sqlalchemy_store import SQLAlchemyStore

__all__ = ["AccountPostStore", "SQLAlchemyStore", "get_db", "init_db"]
