"""Web search service interface and provider factory."""

from typing import Protocol

from prophet.config import Settings

from .exceptions import (
    SearchAPIError,
    SearchAuthError,
    SearchBadRequestError,
    SearchRateLimitError,
    SearchServerError,
)
from .models import SearchHit


class WebSearchService(Protocol):
    async def search(self, query: str) -> list[SearchHit]: ...


def create_search_service(settings: Settings):
    """Build the configured provider's client (use it as an async context manager)."""
    provider = settings.search.provider

    if provider == "google":
        from prophet.services.google import GoogleSearchClient, GoogleSearchConfig

        if not settings.google_search_api_key or not settings.google_search_engine_id:
            raise ValueError(
                "GOOGLE_SEARCH_API_KEY and GOOGLE_SEARCH_ENGINE_ID are required "
                "for the google search provider"
            )
        return GoogleSearchClient(
            api_key=settings.google_search_api_key,
            engine_id=settings.google_search_engine_id,
            config=GoogleSearchConfig(
                timeout_seconds=settings.arbitration.search_timeout_seconds,
                max_retries=settings.search.max_retries,
                num_results=settings.search.results_per_request,
                user_agent=settings.search.user_agent,
            ),
        )

    from prophet.services.exa import ExaClient, ExaConfig

    if not settings.exa_api_key:
        raise ValueError("EXA_API_KEY is required for the exa search provider")
    return ExaClient(
        api_key=settings.exa_api_key,
        config=ExaConfig(
            timeout_seconds=settings.arbitration.search_timeout_seconds,
            max_retries=settings.search.max_retries,
            num_results=settings.search.results_per_request,
        ),
    )


__all__ = [
    "SearchAPIError",
    "SearchAuthError",
    "SearchBadRequestError",
    "SearchHit",
    "SearchRateLimitError",
    "SearchServerError",
    "WebSearchService",
    "create_search_service",
]
