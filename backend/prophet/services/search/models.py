"""Provider-neutral search result models."""

from urllib.parse import urlparse

from pydantic import BaseModel


class SearchHit(BaseModel):
    """One web search result as presented to the arbitrator."""

    title: str
    link: str
    snippet: str = ""
    display_link: str = ""

    @classmethod
    def from_url(cls, url: str, title: str | None, snippet: str | None) -> "SearchHit":
        """Build a hit, deriving the display host from the URL."""
        host = urlparse(url).hostname or ""
        return cls(
            title=title or host or url,
            link=url,
            snippet=snippet or "",
            display_link=host,
        )
