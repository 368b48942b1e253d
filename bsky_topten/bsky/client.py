"""Bluesky XRPC client wrapper used by the collectors and the publisher."""

import asyncio
import logging
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp

from bsky_topten.bsky.richtext import CandidateSpan, build_facets
from bsky_topten.bsky.session import BskySession
from bsky_topten.bsky.types import (
    FEED_FILTER_WITH_REPLIES,
    POST_COLLECTION,
    RELATION_ENDPOINTS,
    PostRef,
)
from bsky_topten.collector.error_handler import ConsecutiveErrorTracker, with_exponential_backoff
from bsky_topten.collector.rate_limiter import RateLimiter
from bsky_topten.config import Config
from bsky_topten.errors import BskyApiError, BskyError, BskyTransportError

logger = logging.getLogger(__name__)

Page = Tuple[List[Dict[str, Any]], Optional[str]]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BskyClient:
    """
    Async client for the handful of XRPC methods the service needs.

    Reads go to the public AppView without authentication; session and
    record writes go to the PDS with an explicit ``BskySession``.
    """

    def __init__(
        self,
        config: Config,
        rate_limiter: RateLimiter,
        error_tracker: ConsecutiveErrorTracker,
        prometheus_exporter=None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Application configuration with endpoints and timeouts
            rate_limiter: Rate limiter shared by all requests
            error_tracker: Tracker for consecutive server errors
            prometheus_exporter: Optional Prometheus metrics exporter
            http_session: Optional pre-built aiohttp session (owned by the caller)
        """
        self.config = config
        self.rate_limiter = rate_limiter
        self.error_tracker = error_tracker
        self.prometheus_exporter = prometheus_exporter
        self._http = http_session
        self._owns_http = http_session is None

    async def __aenter__(self) -> "BskyClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        if self._http is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_sec)
            self._http = aiohttp.ClientSession(timeout=timeout)
            self._owns_http = True

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._http is not None and self._owns_http:
            logger.debug("Closing Bluesky HTTP session")
            await self._http.close()
            self._http = None

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Mapping[str, str], Any]:
        """Perform one HTTP exchange and return status, headers and decoded JSON body."""
        if self._http is None:
            await self.start()

        try:
            async with self._http.request(method, url, params=params, json=json_body, headers=headers) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                return response.status, response.headers, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BskyTransportError(f"{method} {url} failed: {e!r}") from e

    @with_exponential_backoff()
    async def _request(
        self,
        method: str,
        base_url: str,
        nsid: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Call an XRPC method and return its JSON output.

        Raises:
            BskyApiError: The server answered with a non-200 status
            BskyTransportError: The exchange failed or the body was not a JSON object
        """
        await self.rate_limiter.pre_request()

        if params:
            params = {k: v for k, v in params.items() if v is not None}
        headers = {"Authorization": f"Bearer {token}"} if token else None
        url = f"{base_url}/xrpc/{nsid}"

        if self.prometheus_exporter:
            self.prometheus_exporter.record_request(nsid)
            timer = self.prometheus_exporter.time_request()
        else:
            timer = None

        with timer if timer else nullcontext():
            status, response_headers, body = await self._send(method, url, params, json_body, headers)

        self.rate_limiter.update_from_headers(response_headers)

        if status != 200:
            error = body.get("error", "Unknown") if isinstance(body, dict) else "Unknown"
            message = body.get("message", "") if isinstance(body, dict) else ""
            if self.prometheus_exporter:
                self.prometheus_exporter.record_api_error(str(status))
            raise BskyApiError(status, error, message, retry_after=response_headers.get("Retry-After"))

        if not isinstance(body, dict):
            raise BskyTransportError(f"{nsid} returned a non-object body")
        return body

    async def create_session(self, identifier: str, password: str) -> BskySession:
        """
        Log in with an app password.

        Returns:
            A new authenticated session
        """
        data = await self._request(
            "POST",
            self.config.pds_url,
            "com.atproto.server.createSession",
            json_body={"identifier": identifier, "password": password},
        )
        if data.get("status"):
            raise BskyError(f"Account {identifier} is {data['status']}")

        session = BskySession.from_response(data)
        logger.info(f"Authenticated to Bluesky as {session.handle}")
        return session

    async def refresh_session(self, session: BskySession) -> BskySession:
        """Exchange the refresh token for a new session value."""
        data = await self._request(
            "POST",
            self.config.pds_url,
            "com.atproto.server.refreshSession",
            token=session.refresh_jwt,
        )
        logger.info(f"Refreshed Bluesky session for {session.handle}")
        return BskySession.from_response(data)

    def is_session_valid(self, session: Optional[BskySession], now: Optional[datetime] = None) -> bool:
        return session is not None and session.is_valid(now)

    async def ensure_session(self, session: Optional[BskySession]) -> BskySession:
        """
        Return a usable session: ``session`` itself, a refreshed one, or a fresh login.
        """
        if self.is_session_valid(session):
            return session

        if session is not None:
            try:
                return await self.refresh_session(session)
            except BskyError as e:
                logger.warning(f"Session refresh failed, logging in again: {e}")

        return await self.create_session(self.config.handle, self.config.password)

    async def list_followers(
        self,
        actor: str,
        limit: int = 100,
        cursor: Optional[str] = None,
        relation: str = "followers",
    ) -> Page:
        """
        Fetch one page of an actor's social graph.

        Args:
            actor: Handle or DID
            limit: Page size (1-100)
            cursor: Cursor from the previous page
            relation: ``followers`` or ``follows``

        Returns:
            Profile descriptors and the next cursor (None when exhausted)
        """
        nsid, key = RELATION_ENDPOINTS[relation]
        data = await self._request(
            "GET",
            self.config.appview_url,
            nsid,
            params={"actor": actor, "limit": limit, "cursor": cursor},
        )
        return data.get(key) or [], data.get("cursor") or None

    async def list_author_feed(
        self,
        actor: str,
        limit: int = 100,
        cursor: Optional[str] = None,
        filter: str = FEED_FILTER_WITH_REPLIES,
    ) -> Page:
        """
        Fetch one page of an author's feed, newest first.

        Returns:
            Feed entries and the next cursor (None when exhausted)
        """
        data = await self._request(
            "GET",
            self.config.appview_url,
            "app.bsky.feed.getAuthorFeed",
            params={"actor": actor, "limit": limit, "cursor": cursor, "filter": filter},
        )
        return data.get("feed") or [], data.get("cursor") or None

    async def publish(
        self,
        session: BskySession,
        text: str,
        spans: Optional[List[CandidateSpan]] = None,
        reply: Optional[Dict[str, Any]] = None,
        embed: Optional[Dict[str, Any]] = None,
    ) -> PostRef:
        """
        Create an ``app.bsky.feed.post`` record in the session's repository.

        Args:
            session: Authenticated session
            text: Post text
            spans: Rich-text spans, serialized as facets
            reply: Optional reply reference
            embed: Optional embed object

        Returns:
            Reference to the created post

        Raises:
            BskyTransportError: The response did not identify the created record
        """
        record: Dict[str, Any] = {
            "$type": POST_COLLECTION,
            "text": text,
            "createdAt": _utc_now_iso(),
            "langs": list(self.config.publication.langs),
        }
        if spans:
            record["facets"] = build_facets(spans)
        if reply:
            record["reply"] = reply
        if embed:
            record["embed"] = embed

        data = await self._request(
            "POST",
            self.config.pds_url,
            "com.atproto.repo.createRecord",
            json_body={
                "repo": session.did,
                "collection": POST_COLLECTION,
                "validate": True,
                "record": record,
            },
            token=session.access_jwt,
        )
        if not data.get("uri") or not data.get("cid"):
            raise BskyTransportError("com.atproto.repo.createRecord response lacks uri or cid")
        return PostRef(uri=data["uri"], cid=data["cid"])
