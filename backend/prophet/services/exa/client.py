"""Async wrapper for Exa AI SDK with retry logic and error handling."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from exa_py import Exa

from prophet.services.search.models import SearchHit

from .config import ExaConfig
from .exceptions import (
    ExaAPIError,
    ExaAuthError,
    ExaBadRequestError,
    ExaRateLimitError,
    ExaServerError,
)
from .models import ExaResult, ExaSearchResponse

logger = logging.getLogger(__name__)


class ExaClient:
    """Async wrapper for Exa AI SDK with retry logic and error handling."""

    def __init__(self, api_key: str, config: ExaConfig | None = None):
        self.api_key = api_key
        self.config = config or ExaConfig()
        self._client: Exa | None = None
        logger.info("Initialized ExaClient")

    async def __aenter__(self) -> "ExaClient":
        """Context manager entry - create Exa client."""
        self._client = Exa(api_key=self.api_key)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - cleanup."""
        self._client = None
        logger.info("Closed ExaClient")

    @property
    def client(self) -> Exa:
        """Get Exa client, raising if not in context."""
        if self._client is None:
            raise RuntimeError("ExaClient must be used as async context manager")
        return self._client

    async def _retry_wrapper(self, operation: str, fn: Callable[[], Any]) -> Any:
        """Run a blocking SDK call off the loop, retrying 429/5xx with backoff."""
        retry_count = 0
        last_error: Exception | None = None
        retryable: type[ExaAPIError] = ExaAPIError

        while retry_count < self.config.max_retries:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(fn), timeout=self.config.timeout_seconds
                )

            except TimeoutError as e:
                raise ExaServerError(
                    f"{operation} timed out after {self.config.timeout_seconds}s"
                ) from e
            except Exception as e:
                error_msg = str(e).lower()

                if "401" in error_msg or "unauthorized" in error_msg:
                    raise ExaAuthError("Authentication failed", status_code=401) from e
                elif "429" in error_msg or "rate limit" in error_msg:
                    wait_time = 2**retry_count
                    logger.warning(f"Rate limited in {operation}, waiting {wait_time}s...")
                    last_error, retryable = e, ExaRateLimitError
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif "400" in error_msg or "bad request" in error_msg:
                    raise ExaBadRequestError(f"Invalid request: {e}", status_code=400) from e
                elif any(code in error_msg for code in ["500", "502", "503", "504"]):
                    wait_time = 2**retry_count
                    logger.warning(f"Server error in {operation}, retrying in {wait_time}s...")
                    last_error, retryable = e, ExaServerError
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                else:
                    last_error = e
                    break

        raise retryable(f"{operation} failed after {retry_count} retries: {last_error}")

    async def search_and_contents(
        self, query: str, num_results: int | None = None
    ) -> ExaSearchResponse:
        """Search the web and fetch highlights for each result.

        Args:
            query: Search query
            num_results: Number of results to request (defaults to config)
        """
        num_results = num_results or self.config.num_results

        def _search():
            return self.client.search_and_contents(
                query,
                num_results=num_results,
                type=self.config.search_type,
                highlights=True,
            )

        response = await self._retry_wrapper("search", _search)

        results = [
            ExaResult(
                url=r.url,
                title=getattr(r, "title", None),
                published_date=getattr(r, "published_date", None),
                highlights=getattr(r, "highlights", None) or [],
                text=getattr(r, "text", None),
            )
            for r in response.results
            if getattr(r, "url", None)
        ]
        return ExaSearchResponse(query=query, results=results)

    async def search(self, query: str) -> list[SearchHit]:
        """WebSearchService entry point: Exa results as provider-neutral hits."""
        response = await self.search_and_contents(query)
        logger.debug(f"Exa returned {len(response.results)} results for '{query}'")
        return [
            SearchHit.from_url(r.url, r.title, r.snippet(self.config.snippet_max_chars))
            for r in response.results
        ]
