"""Arbitrator Agent: web-research AI judge for markets with AI arbitration."""

import logging

from prophet.config import Settings, get_settings
from prophet.services.search import WebSearchService, create_search_service
from prophet.settlement.models import Market

from .loop import arbitrate_market
from .models import ArbitrationResult
from .reasoning import ReasoningService, create_reasoning_service

logger = logging.getLogger(__name__)


async def run_arbitrator(
    market: Market,
    settings: Settings | None = None,
    reasoning_service: ReasoningService | None = None,
    search_service: WebSearchService | None = None,
) -> ArbitrationResult:
    """Arbitrate one market with services built from settings unless supplied."""
    settings = settings or get_settings()
    config = settings.arbitration
    reasoning_service = reasoning_service or create_reasoning_service(settings)

    if search_service is not None:
        return await arbitrate_market(market, reasoning_service, search_service, config)

    async with create_search_service(settings) as client:
        return await arbitrate_market(market, reasoning_service, client, config)
