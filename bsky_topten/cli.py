"""Command-line interface for the Bluesky top-ten service."""

import asyncio
import logging
import logging.config
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer
from typing_extensions import Annotated

from bsky_topten.cli_db import app as db_app
from bsky_topten.config import Config
from bsky_topten.errors import BskyError, ConfigError, StorageError
from bsky_topten.monitoring.metrics import PrometheusExporter
from bsky_topten.pipeline import SyncPipeline, open_pipeline
from bsky_topten.scheduler import PassScheduler

app = typer.Typer(help="Bluesky Top Ten - Daily top posts from a tracked audience")
app.add_typer(db_app, name="db", help="Manage the account and post database")

logger = logging.getLogger(__name__)

# Global reference to the scheduler for signal handling
_scheduler: Optional[PassScheduler] = None

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
EnvOption = Annotated[Optional[str], typer.Option("--env", "-e", help="Path to .env file")]
LogLevelOption = Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")]


def setup_logging(log_level: str = "INFO") -> None:
    """
    Set up logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "standard",
                "filename": "logs/topten.log",
                "maxBytes": 10485760,  # 10 MB
                "backupCount": 5,
                "encoding": "utf8",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console", "file"],
                "level": log_level,
                "propagate": True
            },
            "asyncio": {
                "level": "WARNING",
            },
            "aiohttp": {
                "level": "WARNING",
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
            },
        }
    }

    logging.config.dictConfig(log_config)


def load_config(config_path: str, env_path: Optional[str] = None, require_credentials: bool = True) -> Config:
    """
    Load and validate configuration, exiting with status 1 on any problem.
    """
    try:
        config = Config.from_files(config_path, env_path)
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}")
        raise typer.Exit(code=1)

    validation_errors = config.validate(require_credentials=require_credentials)

    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        raise typer.Exit(code=1)

    return config


def create_exporter(config: Config) -> Optional[PrometheusExporter]:
    if not config.monitoring.enable_prometheus:
        return None
    exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
    exporter.start_server()
    return exporter


async def run_single_pass(config: Config, action: Callable[[SyncPipeline], Awaitable[object]]) -> None:
    async with open_pipeline(config, create_exporter(config)) as pipeline:
        await action(pipeline)


async def run_daemon(config: Config) -> None:
    """Run the scheduler until a shutdown signal arrives."""
    global _scheduler

    async with open_pipeline(config, create_exporter(config)) as pipeline:
        _scheduler = PassScheduler(config.schedule, pipeline)
        try:
            await _scheduler.run_daemon()
        finally:
            _scheduler = None


def handle_shutdown_signal(signum, frame):
    """Handle shutdown signals (SIGTERM, SIGINT)."""
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name} signal, initiating graceful shutdown")

    if _scheduler:
        _scheduler.stop()


def _execute(coro: Awaitable[None], name: str) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except (BskyError, StorageError) as e:
        logger.error(f"{name} failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"Unhandled exception: {str(e)}", exc_info=True)
        sys.exit(1)


@app.command()
def run(
    config: ConfigOption = "config.yaml",
    env: EnvOption = None,
    loglevel: LogLevelOption = "INFO",
) -> None:
    """
    Run as a daemon: account sync on startup, hourly post sync, daily publication.
    """
    setup_logging(loglevel)
    config_obj = load_config(config, env)

    logger.info(
        f"Starting Bluesky Top Ten for {config_obj.relation} of {config_obj.source_actor} "
        f"(publishing at {config_obj.schedule.publish_hour_utc:02d}:00 UTC)"
    )

    signal.signal(signal.SIGTERM, handle_shutdown_signal)
    signal.signal(signal.SIGINT, handle_shutdown_signal)

    _execute(run_daemon(config_obj), "Daemon")


@app.command("sync-accounts")
def sync_accounts(
    config: ConfigOption = "config.yaml",
    env: EnvOption = None,
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Ingest and reconcile the tracked accounts once."""
    setup_logging(loglevel)
    config_obj = load_config(config, env, require_credentials=False)
    _execute(run_single_pass(config_obj, lambda p: p.sync_accounts()), "Account sync")


@app.command("sync-posts")
def sync_posts(
    config: ConfigOption = "config.yaml",
    env: EnvOption = None,
    loglevel: LogLevelOption = "INFO",
) -> None:
    """Ingest, score and store posts in the current admission window once."""
    setup_logging(loglevel)
    config_obj = load_config(config, env, require_credentials=False)
    _execute(run_single_pass(config_obj, lambda p: p.sync_posts()), "Post sync")


@app.command()
def publish(
    config: ConfigOption = "config.yaml",
    env: EnvOption = None,
    loglevel: LogLevelOption = "INFO",
    skip_sync: Annotated[bool, typer.Option("--skip-sync", help="Do not refresh accounts before publishing")] = False,
) -> None:
    """
    Publish the current top posts and clear the working set.

    Refreshes the tracked accounts first unless --skip-sync is given.
    """
    setup_logging(loglevel)
    config_obj = load_config(config, env)

    async def daily(pipeline: SyncPipeline) -> None:
        if not skip_sync:
            await pipeline.sync_accounts()
        await pipeline.publish_top_ten()

    _execute(run_single_pass(config_obj, daily), "Publication")


if __name__ == "__main__":
    app()
