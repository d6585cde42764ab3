"""AI arbitration pipeline: Arbitration Loop -> Settlement Engine.

The loop and the engine know nothing of each other; this module runs the loop
for a market and hands its outcome to resolve_market() as the system AI
principal.
"""

import logging
from typing import Literal

from pydantic import BaseModel, Field

from prophet.agents.arbitrator import (
    ArbitrationResult,
    ReasoningService,
    arbitrate_market,
    create_reasoning_service,
)
from prophet.config import ArbitrationConfig, Settings
from prophet.errors import ProphetError
from prophet.services.search import WebSearchService, create_search_service
from prophet.settlement.engine import SettlementEngine
from prophet.settlement.models import (
    ArbitratorType,
    MarketState,
    Principal,
    ResolutionResult,
)
from prophet.storage.database import get_ledger_store

logger = logging.getLogger(__name__)


class AISettlement(BaseModel):
    """Arbitration verdict plus the settlement it produced."""

    arbitration: ArbitrationResult
    resolution: ResolutionResult


class SweepEntry(BaseModel):
    market_id: str
    status: Literal["resolved", "unresolvable", "rejected", "failed"]
    error_code: str | None = None
    message: str | None = None


class SweepReport(BaseModel):
    entries: list[SweepEntry] = Field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for e in self.entries if e.status == status)


def system_ai_principal(config: ArbitrationConfig) -> Principal:
    return Principal(user_id=config.system_user_id, is_system_ai=True)


async def arbitrate_and_settle(
    engine: SettlementEngine,
    market_id: str,
    reasoning_service: ReasoningService,
    search_service: WebSearchService,
    config: ArbitrationConfig | None = None,
) -> AISettlement:
    """Arbitrate one AI market and settle it with the verdict."""
    config = config or ArbitrationConfig()
    market = await engine.get_market(market_id)
    arbitration = await arbitrate_market(
        market, reasoning_service, search_service, config, now=engine.clock()
    )
    resolution = await engine.resolve_market(
        market_id,
        arbitration.outcome,
        system_ai_principal(config),
        reasoning=arbitration.reasoning,
    )
    return AISettlement(arbitration=arbitration, resolution=resolution)


async def sweep_due_ai_markets(
    engine: SettlementEngine,
    reasoning_service: ReasoningService,
    search_service: WebSearchService,
    config: ArbitrationConfig | None = None,
) -> SweepReport:
    """Arbitrate every active AI market past its deadline; one failure never stops the rest."""
    config = config or ArbitrationConfig()
    due = await engine.list_markets(
        state=MarketState.ACTIVE,
        arbitrator_type=ArbitratorType.AI,
        deadline_before=engine.clock(),
    )
    report = SweepReport()
    total = len(due)
    logger.info(f"Arbitration sweep: {total} AI market(s) due")

    for i, market in enumerate(due, 1):
        logger.info(f"Processing market {i}/{total}: {market.id}")
        try:
            settled = await arbitrate_and_settle(
                engine, market.id, reasoning_service, search_service, config
            )
        except ProphetError as e:
            status = {
                "UNRESOLVABLE": "unresolvable",
                "AI_ERROR": "failed",
                "CONSISTENCY_VIOLATION": "failed",
            }.get(e.code, "rejected")
            logger.warning(f"Market {market.id} not settled ({e.code}): {e.message}")
            report.entries.append(
                SweepEntry(market_id=market.id, status=status, error_code=e.code, message=e.message)
            )
            continue
        except Exception as e:
            logger.error(f"Arbitration failed for {market.id}: {e}", exc_info=True)
            report.entries.append(
                SweepEntry(market_id=market.id, status="failed", message=str(e))
            )
            continue

        logger.info(
            f"Market {market.id} settled {settled.resolution.outcome}: "
            f"{settled.resolution.total_payout} to {settled.resolution.winners_count} winner(s)"
        )
        report.entries.append(SweepEntry(market_id=market.id, status="resolved"))

    logger.info(
        f"Sweep complete: {report.count('resolved')} resolved, "
        f"{report.count('unresolvable')} unresolvable, {report.count('failed')} failed"
    )
    return report


async def run_sweep(settings: Settings) -> SweepReport:
    """One sweep with production services built from settings."""
    engine = SettlementEngine(
        get_ledger_store(settings), settings.settlement, payments=settings.payments
    )
    reasoning_service = create_reasoning_service(settings)
    async with create_search_service(settings) as search_service:
        return await sweep_due_ai_markets(
            engine, reasoning_service, search_service, settings.arbitration
        )


async def run_market_arbitration(settings: Settings, market_id: str) -> AISettlement:
    """Arbitrate and settle one market with production services."""
    engine = SettlementEngine(
        get_ledger_store(settings), settings.settlement, payments=settings.payments
    )
    reasoning_service = create_reasoning_service(settings)
    async with create_search_service(settings) as search_service:
        return await arbitrate_and_settle(
            engine, market_id, reasoning_service, search_service, settings.arbitration
        )
