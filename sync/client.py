"""
============================================================================
KUMASYNC - REMOTE STATUS CLIENT
============================================================================
Fetches the status page and heartbeat endpoints of a source with httpx.

Every request is bounded by a total deadline; overrunning it aborts the
request and raises SyncTimeoutError. Non-2xx responses, connection
failures and undecodable bodies raise RemoteError.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from database.models import Source
from exceptions.remote import RemoteError, SyncTimeoutError
from sync.payloads import HeartbeatPayload, StatusPagePayload
from utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_USER_AGENT = "KumaSync/1.0 (Status Page Aggregator)"


class StatusPageClient:
    """
    Client for the status page protocol.

    Parameters
    ----------
    user_agent : str
        User-Agent header sent with every request.
    transport : httpx.AsyncBaseTransport, optional
        Transport handed to each ``httpx.AsyncClient`` (tests inject
        ``httpx.MockTransport``).
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.transport = transport

    @staticmethod
    def base_url(source: Source) -> str:
        return source.url.rstrip("/")

    def status_page_url(self, source: Source) -> str:
        return f"{self.base_url(source)}/api/status-page/{source.slug}"

    def heartbeat_url(self, source: Source) -> str:
        return f"{self.base_url(source)}/api/status-page/heartbeat/{source.slug}"

    async def fetch_monitors(self, source: Source, timeout_ms: int = 30000) -> StatusPagePayload:
        """
        Fetch the status page of a source.

        An unpublished page parses fine and simply yields no monitors.

        Raises:
            SyncTimeoutError: The request exceeded ``timeout_ms``
            RemoteError: Non-2xx status, connection failure or bad payload
        """
        url = self.status_page_url(source)
        body = await self._get_json(url, source.slug, timeout_ms, "monitors")

        try:
            payload = StatusPagePayload.model_validate(body)
        except ValidationError as e:
            raise RemoteError(
                f"Malformed status page payload for slug \"{source.slug}\": {e.error_count()} invalid field(s)",
                url=url,
                slug=source.slug,
                cause=e,
            )

        if not payload.published:
            logger.warning(f"Status page \"{source.slug}\" at {source.url} is not published, no monitors synced")

        return payload

    async def fetch_heartbeats(self, source: Source, timeout_ms: int = 30000) -> HeartbeatPayload:
        """
        Fetch the heartbeat list of a source.

        Raises:
            SyncTimeoutError: The request exceeded ``timeout_ms``
            RemoteError: Non-2xx status, connection failure or bad payload
        """
        url = self.heartbeat_url(source)
        body = await self._get_json(url, source.slug, timeout_ms, "heartbeats")

        try:
            return HeartbeatPayload.model_validate(body)
        except ValidationError as e:
            raise RemoteError(
                f"Malformed heartbeat payload for slug \"{source.slug}\": {e.error_count()} invalid field(s)",
                url=url,
                slug=source.slug,
                cause=e,
            )

    async def _get_json(self, url: str, slug: str, timeout_ms: int, what: str) -> Any:
        timeout = timeout_ms / 1000

        try:
            response = await asyncio.wait_for(self._get(url, timeout), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise SyncTimeoutError(
                f"Timed out fetching {what} for slug \"{slug}\" after {timeout_ms}ms",
                timeout_ms=timeout_ms,
                url=url,
                slug=slug,
                cause=e,
            )
        except httpx.HTTPError as e:
            raise RemoteError(
                f"Failed to fetch {what}: {e.__class__.__name__}: {e}. "
                f"Make sure the source URL for status page slug \"{slug}\" is reachable.",
                url=url,
                slug=slug,
                cause=e,
            )

        if not response.is_success:
            raise RemoteError(
                f"Failed to fetch {what}: {response.reason_phrase or response.status_code}. "
                f"Make sure the status page slug \"{slug}\" is correct.",
                status_code=response.status_code,
                url=url,
                slug=slug,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                f"Invalid JSON in {what} response for slug \"{slug}\"",
                status_code=response.status_code,
                url=url,
                slug=slug,
                cause=e,
            )

    async def _get(self, url: str, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10)),
            follow_redirects=True,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            transport=self.transport,
        ) as client:
            response = await client.get(url)
            return response
