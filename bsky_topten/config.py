"""Configuration handling for the Bluesky top-ten service."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from bsky_topten.errors import ConfigError

RELATIONS = ("followers", "follows")


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    max_requests_per_minute: int = 600
    min_remaining_calls: int = 5
    sleep_buffer_sec: int = 2


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class DatabaseConfig:
    """Relational storage configuration."""

    url: str = "sqlite:///data/topten.db"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False
    create_schema: bool = True


@dataclass
class WindowConfig:
    """Admission window for scored posts, relative to the start of a pass."""

    lag_hours: int = 24
    span_hours: int = 1


@dataclass
class PublicationConfig:
    """Daily top-ten thread settings."""

    label: str = "#Топ10"
    top_n: int = 10
    post_delay_sec: int = 300
    langs: List[str] = field(default_factory=lambda: ["uk"])


@dataclass
class ScheduleConfig:
    """Periodic pass settings for daemon mode."""

    sync_on_startup: bool = True
    posts_interval_sec: int = 3600
    publish_hour_utc: int = 12


def _merge_section(section_cls, values: Optional[Dict[str, Any]]):
    """Build a section dataclass from defaults overridden by a YAML mapping."""
    section = section_cls()
    if isinstance(values, dict):
        known = {f.name for f in fields(section_cls)}
        for key, value in values.items():
            if key in known:
                setattr(section, key, value)
    return section


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    # Bluesky credentials and endpoints from environment
    handle: str = ""
    password: str = ""
    pds_url: str = "https://bsky.social"
    appview_url: str = "https://public.api.bsky.app"

    # YAML config values with defaults
    source_actor: str = "bsky.one"
    relation: str = "followers"
    page_size: int = 100
    feed_concurrency: int = 8
    update_concurrency: int = 4
    request_timeout_sec: int = 30
    failure_threshold: int = 5
    window: WindowConfig = field(default_factory=WindowConfig)
    publication: PublicationConfig = field(default_factory=PublicationConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    _SECTIONS = {
        "window": WindowConfig,
        "publication": PublicationConfig,
        "schedule": ScheduleConfig,
        "rate_limit": RateLimitConfig,
        "monitoring": MonitoringConfig,
        "database": DatabaseConfig,
    }

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration

        Raises:
            ConfigError: If the YAML file cannot be parsed or is not a mapping
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                try:
                    yaml_config = yaml.safe_load(file) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Cannot parse {config_path}: {e}") from e

            if not isinstance(yaml_config, dict):
                raise ConfigError(f"{config_path} must contain a mapping at the top level")

            for key, value in yaml_config.items():
                if key in cls._SECTIONS:
                    setattr(config, key, _merge_section(cls._SECTIONS[key], value))
                elif not key.startswith("_") and hasattr(config, key):
                    setattr(config, key, value)

        # Environment wins over YAML for secrets and endpoints
        config.handle = os.getenv("BLUESKY_HANDLE", config.handle)
        config.password = os.getenv("BLUESKY_PASSWORD", config.password)
        config.pds_url = os.getenv("BSKY_PDS_URL", config.pds_url).rstrip("/")
        config.appview_url = os.getenv("BSKY_APPVIEW_URL", config.appview_url).rstrip("/")
        config.database.url = os.getenv("DATABASE_URL", config.database.url)

        # Ensure the SQLite directory exists
        if config.database.url.startswith("sqlite:///"):
            db_dir = os.path.dirname(config.database.url[len("sqlite:///"):])
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        return config

    def validate(self, require_credentials: bool = True) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Args:
            require_credentials: Whether publishing credentials must be present

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if require_credentials:
            if not self.handle:
                errors.append("Missing BLUESKY_HANDLE in environment")
            if not self.password:
                errors.append("Missing BLUESKY_PASSWORD in environment")

        if not self.source_actor:
            errors.append("source_actor must be set")
        if self.relation not in RELATIONS:
            errors.append(f"relation must be one of {', '.join(RELATIONS)}")
        if not 1 <= self.page_size <= 100:
            errors.append("page_size must be between 1 and 100")
        if self.feed_concurrency <= 0:
            errors.append("feed_concurrency must be greater than 0")
        if self.update_concurrency <= 0:
            errors.append("update_concurrency must be greater than 0")
        if self.request_timeout_sec <= 0:
            errors.append("request_timeout_sec must be greater than 0")
        if self.failure_threshold <= 0:
            errors.append("failure_threshold must be greater than 0")

        if self.window.lag_hours < 0 or self.window.span_hours <= 0:
            errors.append("window.lag_hours must be >= 0 and window.span_hours > 0")

        if self.publication.top_n <= 0:
            errors.append("publication.top_n must be greater than 0")
        if self.publication.post_delay_sec < 0:
            errors.append("publication.post_delay_sec must be >= 0")
        if not self.publication.label.strip():
            errors.append("publication.label must be non-empty")

        if self.schedule.posts_interval_sec < 60:
            errors.append("schedule.posts_interval_sec must be at least 60 seconds")
        if not 0 <= self.schedule.publish_hour_utc <= 23:
            errors.append("schedule.publish_hour_utc must be between 0 and 23")

        if self.rate_limit.max_requests_per_minute <= 0:
            errors.append("rate_limit.max_requests_per_minute must be greater than 0")

        if not self.database.url:
            errors.append("DATABASE_URL must be specified")

        return errors
