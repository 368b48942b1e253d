"""Bluesky Top Ten: daily top posts from a tracked audience."""

__version__ = "0.1.0"
