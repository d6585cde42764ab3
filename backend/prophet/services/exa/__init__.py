"""Exa AI search provider."""

from .client import ExaClient
from .config import ExaConfig
from .exceptions import (
    ExaAPIError,
    ExaAuthError,
    ExaBadRequestError,
    ExaRateLimitError,
    ExaServerError,
)

__all__ = [
    "ExaClient",
    "ExaConfig",
    "ExaAPIError",
    "ExaAuthError",
    "ExaBadRequestError",
    "ExaRateLimitError",
    "ExaServerError",
]
