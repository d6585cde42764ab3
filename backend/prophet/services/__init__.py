"""External service clients (web search providers)."""
