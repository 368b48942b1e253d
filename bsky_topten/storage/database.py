"""
SQLAlchemy engine and session helpers.

SQLite is the default backend; any SQLAlchemy URL (e.g. PostgreSQL via
psycopg2) works as long as the schema matches the Alembic migrations.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bsky_topten.config import DatabaseConfig
from bsky_topten.errors import StorageError
from bsky_topten.models.orm import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_config: DatabaseConfig) -> Engine:
    """
    Create an engine for the configured URL.

    Args:
        db_config: Database configuration

    Returns:
        SQLAlchemy engine
    """
    if db_config.url.startswith("sqlite"):
        # Account updates run on worker threads, each with its own connection.
        engine = create_engine(
            db_config.url,
            echo=db_config.echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        db_config.url,
        echo=db_config.echo,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_pre_ping=True,
    )


def init_db(db_config: DatabaseConfig) -> sessionmaker:
    """
    Initialize the database connection and, if configured, the schema.

    Schema creation is a convenience for SQLite deployments; PostgreSQL
    deployments should run ``alembic upgrade head`` instead.

    Args:
        db_config: Database configuration

    Returns:
        Session factory bound to the new engine

    Raises:
        StorageError: If the connection test or schema creation fails
    """
    engine = create_db_engine(db_config)

    try:
        if db_config.create_schema:
            Base.metadata.create_all(engine)

        logger.info("Testing database connection...")
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        engine.dispose()
        raise StorageError(f"Failed to initialize database: {e}") from e

    logger.info("Database connection successful")
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_db(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Transactional session scope.

    Commits on success, rolls back on any error, and always closes the
    session. SQLAlchemy errors are re-raised as StorageError.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(str(e)) from e
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()
