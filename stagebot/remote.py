"""
Production-control service client.

HTTP client for the service that owns tracks, scene switching and automation.
Read-only calls are retried with exponential backoff; mutations are sent
exactly once, since retrying a partially-applied mutation blind is worse than
reporting the failure.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .errors import RemoteCallFailure

logger = logging.getLogger("stagebot.remote")

# -----------------------------------------------------------------------------
# Timeout & Retry Configuration
# -----------------------------------------------------------------------------
API_TIMEOUT_DEFAULT = 5.0  # seconds
API_MAX_RETRIES = 3
API_RETRY_BACKOFF_BASE = 0.5  # seconds, doubles each retry


@dataclass(frozen=True)
class Track:
    id: int
    name: str


class ProductionControlClient:
    """
    Async client for the production-control service.

    Every failure (timeout, connection error, non-2xx, malformed body) is
    raised as RemoteCallFailure; callers never see httpx exceptions.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = API_TIMEOUT_DEFAULT,
        max_retries: int = API_MAX_RETRIES,
        backoff_base: float = API_RETRY_BACKOFF_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                 transport=self._transport)

    async def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        retry: bool = False,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the service.

        Args:
            operation: name used in logs and errors
            method: HTTP method
            endpoint: path below base_url
            data: JSON body
            headers: extra request headers
            retry: retry transient errors (only for read-only calls)
        """
        max_attempts = self.max_retries if retry else 1
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                async with self._client() as client:
                    response = await client.request(method, endpoint, json=data, headers=headers)
                    response.raise_for_status()
                    if not response.content:
                        return {}
                    body = response.json()
                    if not isinstance(body, dict):
                        raise RemoteCallFailure(operation, "response body is not an object")
                    return body

            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
                logger.warning(
                    f"{operation}: {type(e).__name__} on attempt {attempt + 1}/{max_attempts}: {e}"
                )

            except httpx.HTTPStatusError as e:
                # 4xx/5xx are answers, not transient failures
                raise RemoteCallFailure(
                    operation, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
                ) from e

            except ValueError as e:
                raise RemoteCallFailure(operation, f"invalid JSON response: {e}") from e

            if attempt < max_attempts - 1:
                backoff = self.backoff_base * (2 ** attempt)
                logger.info(f"{operation}: retrying in {backoff}s...")
                await asyncio.sleep(backoff)

        raise RemoteCallFailure(
            operation, f"unreachable after {max_attempts} attempt(s): {last_error}"
        ) from last_error

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------
    async def list_tracks(self) -> List[Track]:
        body = await self._request("ListTracks", "GET", "/tracks", retry=True)
        try:
            return [Track(id=int(t["trackId"]), name=str(t["trackName"]))
                    for t in body.get("tracks", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallFailure("ListTracks", f"malformed track entry: {e}") from e

    async def enable_automation(self, track_id: int) -> str:
        """Returns the track name."""
        return await self._switch_automation(track_id, enabled=True)

    async def disable_automation(self, track_id: int) -> str:
        """Returns the track name."""
        return await self._switch_automation(track_id, enabled=False)

    async def _switch_automation(self, track_id: int, enabled: bool) -> str:
        operation = "EnableAutomation" if enabled else "DisableAutomation"
        verb = "enable" if enabled else "disable"
        body = await self._request(operation, "POST", f"/tracks/{track_id}/automation/{verb}")
        name = body.get("trackName")
        if not isinstance(name, str):
            raise RemoteCallFailure(operation, "response has no trackName")
        return name

    async def move_scene_to_next(self, track_id: int, idempotency_key: Optional[str] = None) -> None:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        await self._request("MoveSceneToNext", "POST", f"/tracks/{track_id}/scene/next",
                            headers=headers)
