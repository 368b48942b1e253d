"""Immutable authenticated session for the Bluesky PDS."""

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def jwt_expiry(token: str) -> Optional[datetime]:
    """
    Read the ``exp`` claim of a JWT without verifying its signature.

    Returns:
        Expiry as an aware UTC datetime, or None if the token carries none
    """
    try:
        payload_b64 = token.split(".")[1]
        padded = payload_b64 + "=" * (-len(payload_b64) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError, binascii.Error):
        return None

    exp = claims.get("exp") if isinstance(claims, dict) else None
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


@dataclass(frozen=True)
class BskySession:
    """
    Tokens and identity of one app-password session.

    Refreshing yields a new instance; a session value is never mutated.
    """

    did: str
    handle: str
    access_jwt: str
    refresh_jwt: str

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "BskySession":
        return cls(
            did=data["did"],
            handle=data["handle"],
            access_jwt=data["accessJwt"],
            refresh_jwt=data["refreshJwt"],
        )

    @property
    def access_expires_at(self) -> Optional[datetime]:
        return jwt_expiry(self.access_jwt)

    def is_valid(self, now: Optional[datetime] = None, margin: timedelta = timedelta(minutes=5)) -> bool:
        """True while the access token is more than ``margin`` away from expiry."""
        expires_at = self.access_expires_at
        if expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now + margin < expires_at

    def __repr__(self) -> str:
        return f"BskySession(did={self.did!r}, handle={self.handle!r})"
