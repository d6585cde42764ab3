"""Google Custom Search integration."""

from .client import GoogleSearchClient
from .config import GoogleSearchConfig

__all__ = ["GoogleSearchClient", "GoogleSearchConfig"]
