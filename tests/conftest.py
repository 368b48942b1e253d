"""Shared fixtures for the test-suite."""

import os
import sys
from datetime import datetime, timezone

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from bsky_topten.config import DatabaseConfig
from bsky_topten.storage.database import init_db
from bsky_topten.storage.sqlalchemy_store import SQLAlchemyStore


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file."""
    factory = init_db(DatabaseConfig(url=f"sqlite:///{tmp_path / 'topten.db'}"))
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def store(session_factory):
    return SQLAlchemyStore(session_factory)


@pytest.fixture
def now():
    return datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
