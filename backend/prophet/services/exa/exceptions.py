"""Custom exceptions for Exa AI service."""

from prophet.services.search.exceptions import (
    SearchAPIError,
    SearchAuthError,
    SearchBadRequestError,
    SearchRateLimitError,
    SearchServerError,
)


class ExaAPIError(SearchAPIError):
    """Base exception for Exa API errors."""

    pass


class ExaAuthError(ExaAPIError, SearchAuthError):
    """Authentication failed (401)."""

    pass


class ExaRateLimitError(ExaAPIError, SearchRateLimitError):
    """Rate limit exceeded (429), still failing after retries."""

    pass


class ExaBadRequestError(ExaAPIError, SearchBadRequestError):
    """Invalid request parameters (400)."""

    pass


class ExaServerError(ExaAPIError, SearchServerError):
    """Server-side error (5xx), still failing after retries."""

    pass
