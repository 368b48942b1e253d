"""Prometheus metrics for monitoring the Bluesky top-ten service."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

REQUESTS = Counter(
    "bsky_topten_requests_total",
    "Number of XRPC requests performed",
    ["method"],
)

API_ERRORS = Counter(
    "bsky_topten_api_errors_total",
    "Number of XRPC errors encountered",
    ["error_type"],
)

CONSECUTIVE_ERRORS = Gauge(
    "bsky_topten_consecutive_errors",
    "Number of consecutive retryable XRPC errors",
)

ACCOUNTS_INGESTED = Counter(
    "bsky_topten_accounts_ingested_total",
    "Number of account candidates ingested",
)

POSTS_SCORED = Counter(
    "bsky_topten_posts_scored_total",
    "Number of posts admitted and scored",
)

POSTS_PUBLISHED = Counter(
    "bsky_topten_posts_published_total",
    "Number of top-ten posts published",
    ["outcome"],
)

TRACKED_ACCOUNTS = Gauge(
    "bsky_topten_tracked_accounts",
    "Number of accounts in the store",
)

REQUEST_DURATION = Histogram(
    "bsky_topten_request_duration_seconds",
    "Duration of XRPC requests in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

PASS_DURATION = Histogram(
    "bsky_topten_pass_duration_seconds",
    "Duration of scheduled passes in seconds",
    ["name", "outcome"],
    buckets=[1.0, 10.0, 60.0, 300.0, 900.0, 3600.0, 7200.0],
)

LAST_PASS_TIMESTAMP = Gauge(
    "bsky_topten_last_pass_timestamp_seconds",
    "Unix time the pass last finished",
    ["name"],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the Bluesky top-ten service."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_request(self, method: str) -> None:
        REQUESTS.labels(method=method).inc()

    def record_api_error(self, error_type: str) -> None:
        """
        Record an API error.

        Args:
            error_type: Type of API error (e.g., '500', '429', 'transport')
        """
        API_ERRORS.labels(error_type=error_type).inc()

    def set_consecutive_errors(self, count: int) -> None:
        CONSECUTIVE_ERRORS.set(count)

    def record_accounts_ingested(self, count: int) -> None:
        ACCOUNTS_INGESTED.inc(count)

    def record_posts_scored(self, count: int) -> None:
        POSTS_SCORED.inc(count)

    def record_post_published(self, success: bool) -> None:
        POSTS_PUBLISHED.labels(outcome="success" if success else "failure").inc()

    def set_tracked_accounts(self, count: int) -> None:
        TRACKED_ACCOUNTS.set(count)

    def observe_pass(self, name: str, seconds: float, success: bool = True) -> None:
        """
        Record the duration and completion time of a pass.

        Args:
            name: Pass name as logged
            seconds: Elapsed seconds
            success: Whether the pass completed without raising
        """
        PASS_DURATION.labels(name=name, outcome="success" if success else "failure").observe(seconds)
        LAST_PASS_TIMESTAMP.labels(name=name).set(time.time())

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing API requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing API requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            REQUEST_DURATION.observe(time.time() - self.start_time)
