"""Exception hierarchy for the Bluesky top-ten service."""

from typing import Optional


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class BskyError(RuntimeError):
    """Base class for failures talking to the Bluesky XRPC API."""


class BskyTransportError(BskyError):
    """Raised when a remote call could not complete (connection, timeout, bad body)."""


class BskyApiError(BskyError):
    """Raised when the API answers with a well-formed XRPC error payload."""

    def __init__(
        self,
        status: int,
        error: str,
        message: str = "",
        retry_after: Optional[str] = None,
    ):
        self.status = status
        self.error = error
        self.message = message
        self.retry_after = retry_after
        super().__init__(f"Bsky error {status}: {{error: {error!r}, message: {message!r}}}")

    @property
    def is_retryable(self) -> bool:
        return self.status == 429 or 500 <= self.status < 600


class MalformedRecordError(ValueError):
    """Raised when a remote descriptor lacks a required field."""


class StorageError(RuntimeError):
    """Raised when reading or writing the relational store fails."""
