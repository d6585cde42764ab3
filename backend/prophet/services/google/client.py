"""Async client for the Google Custom Search JSON API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from prophet.services.search.exceptions import (
    SearchAPIError,
    SearchAuthError,
    SearchBadRequestError,
    SearchRateLimitError,
    SearchServerError,
)
from prophet.services.search.models import SearchHit

from .config import GoogleSearchConfig

logger = logging.getLogger(__name__)


class GoogleSearchClient:
    def __init__(
        self,
        api_key: str,
        engine_id: str,
        config: GoogleSearchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.engine_id = engine_id
        self.config = config or GoogleSearchConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        logger.info("Initialized GoogleSearchClient")

    async def __aenter__(self) -> GoogleSearchClient:
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            headers={"User-Agent": self.config.user_agent},
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed GoogleSearchClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "GoogleSearchClient must be used as async context manager"
            )
        return self._client

    async def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.get(self.config.base_url, params=params)
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"Search request failed: {e}")
                retry_count += 1
                continue

            if response.status_code in (401, 403):
                raise SearchAuthError(
                    "Search API authentication failed", status_code=response.status_code
                )
            elif response.status_code == 400:
                raise SearchBadRequestError(
                    f"Invalid search request: {response.text[:200]}", status_code=400
                )
            elif response.status_code == 429:
                last_error = SearchRateLimitError("Search quota exceeded", status_code=429)
                retry_count += 1
                if retry_count < self.config.max_retries:
                    wait_time = 2 ** retry_count
                    logger.warning(f"Rate limited, waiting {wait_time}s...")
                    await asyncio.sleep(wait_time)
                continue
            elif response.status_code >= 500:
                last_error = SearchServerError(
                    f"Search server error {response.status_code}",
                    status_code=response.status_code,
                )
                retry_count += 1
                continue
            elif response.status_code >= 400:
                raise SearchAPIError(
                    f"Search request rejected: {response.status_code}",
                    status_code=response.status_code,
                )

            return response.json()

        if isinstance(last_error, SearchAPIError):
            raise last_error
        raise SearchAPIError(f"Search failed after {retry_count} attempts: {last_error}")

    async def search(self, query: str) -> list[SearchHit]:
        """Run one query and return its hits (possibly empty)."""
        data = await self._request(
            {
                "key": self.api_key,
                "cx": self.engine_id,
                "q": query,
                "num": self.config.num_results,
            }
        )
        items = data.get("items") or []
        hits = [
            SearchHit(
                title=item.get("title") or "",
                link=item["link"],
                snippet=item.get("snippet") or "",
                display_link=item.get("displayLink") or "",
            )
            for item in items
            if item.get("link")
        ]
        logger.debug(f"Google returned {len(hits)} results for '{query}'")
        return hits
