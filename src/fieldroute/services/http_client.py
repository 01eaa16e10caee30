"""Shared async HTTP plumbing for the geocoding and driving-distance providers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class AsyncJSONClient:
    """GET-with-retries helper used by every provider adapter.

    Timeouts and network errors are retried with exponential backoff, retryable
    status codes with linear backoff.
    Network failures that survive every retry are raised as ``ConnectionError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Provider base URL is not configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.http_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.http_backoff_seconds
        self.transport = transport
        self.user_agent = user_agent or settings.http_user_agent

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/json",
                "Accept-Language": f"{settings.geocoding_language},en;q=0.9",
            },
            transport=self.transport,
        )

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        async with self._get_client() as client:
            attempt = 0
            while True:
                try:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if e.response.status_code not in RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise
                    wait_time = self.backoff_seconds * attempt
                    logger.debug(
                        f"HTTP {e.response.status_code} from {self.base_url}, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Request to {self.base_url} timed out after {self.max_retries} retries: {e}")
                        raise
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Timeout from {self.base_url}, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    await asyncio.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(f"Failed to connect to {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Network error for {self.base_url}, retrying in {wait_time:.1f}s: {e}")
                    await asyncio.sleep(wait_time)
