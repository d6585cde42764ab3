"""Type-safe Pydantic models for Exa AI SDK responses."""

from pydantic import BaseModel, Field


class ExaResult(BaseModel):
    """One result of a search_and_contents call."""

    url: str
    title: str | None = None
    published_date: str | None = None
    highlights: list[str] = Field(default_factory=list)
    text: str | None = None

    def snippet(self, max_chars: int) -> str:
        """Highlights when Exa returned them, else the head of the page text."""
        if self.highlights:
            body = " ... ".join(h.strip() for h in self.highlights if h and h.strip())
        else:
            body = (self.text or "").strip()
        body = " ".join(body.split())
        return body[:max_chars]


class ExaSearchResponse(BaseModel):
    """Response from a search operation."""

    query: str
    results: list[ExaResult]
