"""Timing helpers for pass-level log lines."""

import logging
import time
from typing import Optional


def format_duration(seconds: float) -> str:
    """Render a duration as ``1h 2m 3s 45ms``, or ``0ms`` when under a millisecond."""
    total_ms = int(round(seconds * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    if millis:
        parts.append(f"{millis}ms")
    return " ".join(parts) or "0ms"


class PassTimer:
    """
    Context manager logging the start, summary and elapsed time of a pass.

    Usage::

        with PassTimer("Syncing accounts", logger) as timer:
            ...
            timer.summary = "42 inserted, 3 updated"
    """

    def __init__(self, name: str, logger: logging.Logger, prometheus_exporter=None):
        self.name = name
        self.logger = logger
        self.prometheus_exporter = prometheus_exporter
        self.summary: Optional[str] = None
        self.elapsed = 0.0
        self._start = 0.0

    def __enter__(self) -> "PassTimer":
        self._start = time.monotonic()
        self.logger.info(f"{self.name} started")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed = time.monotonic() - self._start
        duration = format_duration(self.elapsed)
        outcome = "failed" if exc_type else "complete"
        suffix = f": {self.summary}" if self.summary else ""

        if exc_type:
            self.logger.error(f"{self.name} {outcome}{suffix} ({duration}): {exc}")
        else:
            self.logger.info(f"{self.name} {outcome}{suffix} ({duration})")

        if self.prometheus_exporter:
            self.prometheus_exporter.observe_pass(self.name, self.elapsed, success=exc_type is None)
