"""Search tool execution for the Arbitrator agent.

Every search_web call the model makes passes through run_search_call(): it
enforces the per-arbitration budget, sanitizes and screens the query, runs
the search under a timeout, filters blacklisted sources and records the
surviving sources on the session. The returned text is the tool result the
model sees; only an injection marker in the query is fatal.
"""

import asyncio
import logging

from prophet.config import ArbitrationConfig
from prophet.errors import SecurityViolationError
from prophet.services.search import SearchAPIError, SearchHit, WebSearchService

from .models import ArbitrationSession, Source, ToolCall
from .prompts import BUDGET_EXHAUSTED_MESSAGE, SEARCH_TOOL_NAME, format_search_results
from .security import find_injection_marker, is_blacklisted, sanitize_query

logger = logging.getLogger(__name__)


def filter_hits(hits: list[SearchHit], config: ArbitrationConfig) -> list[SearchHit]:
    """Drop blacklisted/unparseable links and keep at most results_per_query."""
    kept = [h for h in hits if not is_blacklisted(h.link, config.blacklisted_domains)]
    dropped = len(hits) - len(kept)
    if dropped:
        logger.debug(f"Filtered {dropped} blacklisted result(s)")
    return kept[: config.results_per_query]


async def run_search_call(
    call: ToolCall,
    session: ArbitrationSession,
    search_service: WebSearchService,
    config: ArbitrationConfig,
) -> str:
    """Execute one tool call from the model and return the tool result text."""
    if call.name != SEARCH_TOOL_NAME:
        return f"Unknown tool '{call.name}'. Only {SEARCH_TOOL_NAME} is available."

    if session.searches_performed >= config.max_searches:
        return BUDGET_EXHAUSTED_MESSAGE.format(max_searches=config.max_searches)

    raw_query = call.arguments.get("query")
    raw_query = raw_query if isinstance(raw_query, str) else ""

    if find_injection_marker(raw_query, config.injection_markers):
        logger.warning("Injection marker in model-issued search query; aborting arbitration")
        raise SecurityViolationError("Suspicious search query detected")

    session.searches_performed += 1
    n = session.searches_performed

    query = sanitize_query(raw_query, config.max_query_length)
    if query is None:
        logger.info(f"Search {n}/{config.max_searches} rejected: invalid query")
        return "Search failed: Invalid search query"

    session.queries.append(query)
    logger.info(f"Performing search {n}/{config.max_searches}: {query}")

    try:
        async with asyncio.timeout(config.search_timeout_seconds):
            hits = await search_service.search(query)
    except TimeoutError:
        logger.warning(f"Search {n} timed out after {config.search_timeout_seconds}s")
        return "Search failed: search timed out"
    except SearchAPIError as e:
        logger.warning(f"Search {n} failed: {e}")
        return "Search failed: Failed to perform search"
    except Exception as e:
        logger.warning(f"Search {n} failed unexpectedly: {e}")
        return "Search failed: Failed to perform search"

    hits = filter_hits(hits, config)
    new = session.add_sources([Source(url=h.link, title=h.title) for h in hits])
    logger.debug(f"Search {n}: {len(hits)} result(s), {new} new source(s)")
    return format_search_results(query, hits)
