"""Configuration for the Google Custom Search client."""

from pydantic import BaseModel


class GoogleSearchConfig(BaseModel):
    """Configuration for the Google Custom Search JSON API."""

    base_url: str = "https://www.googleapis.com/customsearch/v1"
    timeout_seconds: float = 20.0
    max_retries: int = 1
    num_results: int = 10  # API maximum per request
    user_agent: str = "Prophet-Betting-AI-Arbitrator/1.0"
