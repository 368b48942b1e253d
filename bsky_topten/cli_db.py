"""Command-line interface for database management."""

import logging
import sys
from typing import Optional

import typer
from typing_extensions import Annotated

from bsky_topten.config import Config
from bsky_topten.errors import ConfigError, StorageError
from bsky_topten.storage.database import init_db
from bsky_topten.storage.sqlalchemy_store import SQLAlchemyStore

app = typer.Typer(help="Database Management Commands")
logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """Set up basic logging configuration."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )


def _open_store(config_path: str, env_path: Optional[str], create_schema: bool) -> SQLAlchemyStore:
    try:
        config_obj = Config.from_files(config_path, env_path)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if not config_obj.database.url:
        logger.error("DATABASE_URL must be specified")
        sys.exit(1)

    config_obj.database.create_schema = create_schema
    logger.info(f"Connecting to {config_obj.database.url.split('@')[-1]}")

    try:
        return SQLAlchemyStore(init_db(config_obj.database))
    except StorageError as e:
        logger.error(f"Connection failed: {e}")
        sys.exit(1)


@app.command("init")
def init(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Path to .env file")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
) -> None:
    """Create the accounts and posts tables if they do not exist."""
    setup_logging(loglevel)
    store = _open_store(config, env, create_schema=True)
    logger.info("✓ Database schema is properly configured")
    typer.echo(f"Schema ready ({store.count_accounts()} accounts, {store.count_posts()} posts)")


@app.command("info")
def info(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Path to .env file")] = None,
    loglevel: Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")] = "INFO",
    top: Annotated[int, typer.Option("--top", "-n", help="Number of top posts to list")] = 10,
) -> None:
    """Show tracked account and post counts and the current top posts."""
    setup_logging(loglevel)
    store = _open_store(config, env, create_schema=False)

    try:
        accounts = store.count_accounts()
        posts = store.count_posts()
        ranked = store.top_posts_by_score(top)
    except StorageError as e:
        logger.error(f"Query failed: {e}")
        sys.exit(1)

    typer.echo(f"Tracked accounts: {accounts}")
    typer.echo(f"Posts in working set: {posts}")
    for rank, (post, account) in enumerate(ranked, start=1):
        typer.echo(f"{rank:>2}. {post.total_score:>6}  {account.handle}  {post.uri}")
