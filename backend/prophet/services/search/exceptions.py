"""Exceptions shared by web search providers."""


class SearchAPIError(Exception):
    """Base exception for search provider errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SearchAuthError(SearchAPIError):
    """Authentication failed (401/403)."""

    pass


class SearchRateLimitError(SearchAPIError):
    """Rate limit or quota exceeded (429)."""

    pass


class SearchBadRequestError(SearchAPIError):
    """Invalid request parameters (400)."""

    pass


class SearchServerError(SearchAPIError):
    """Server-side error (5xx)."""

    pass
