"""Data models: ORM tables, candidate records and API mappings."""

from .orm import AccountORM, Base, PostORM
from .records import Account, AccountCandidate, PostCandidate, PostRecord

__all__ = [
    "Account",
    "AccountCandidate",
    "AccountORM",
    "Base",
    "PostCandidate",
    "PostORM",
    "PostRecord",
]
