"""Configuration for Exa AI client."""

from pydantic import BaseModel


class ExaConfig(BaseModel):
    """Configuration for Exa AI client."""

    # Retry settings
    timeout_seconds: float = 30.0
    max_retries: int = 3

    # Search defaults
    num_results: int = 10
    search_type: str = "auto"  # "auto", "neural" or "keyword"
    snippet_max_chars: int = 500
