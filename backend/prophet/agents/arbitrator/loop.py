"""
Arbitration Loop

Bounded tool-use conversation that turns a market into a yes/no outcome:

    GATHERING  model may call search_web; each call spends one unit of budget
    DECIDING   one final request without tools, demanding the JSON verdict
    DONE       verdict parsed

next_phase() is the whole transition table. The loop leaves GATHERING when
the model stops asking for searches, when the budget is spent, or when the
turn cap is reached, so a model that keeps calling tools cannot stall it.
"""

import asyncio
import json
import logging
from datetime import datetime

from pydantic import ValidationError

from prophet.config import ArbitrationConfig
from prophet.errors import (
    ArbitrationUnavailableError,
    BetResolvedError,
    DeadlineNotPassedError,
    NotAIBetError,
    SecurityViolationError,
    UnresolvableError,
)
from prophet.services.search import WebSearchService
from prophet.settlement.models import ArbitratorType, Market, Outcome, utc_now

from .models import (
    ArbitrationPhase,
    ArbitrationResult,
    ArbitrationSession,
    ChatMessage,
    ReasoningTurn,
    ResolutionStatus,
    ToolSpec,
    Verdict,
    VerdictReasoning,
)
from .prompts import (
    SEARCH_TOOL_DESCRIPTION,
    SEARCH_TOOL_NAME,
    SEARCH_TOOL_PARAMETERS,
    build_arbitrator_prompt,
    build_final_decision_prompt,
)
from .reasoning import ReasoningService, ReasoningServiceError
from .research import run_search_call
from .security import find_injection_marker

logger = logging.getLogger(__name__)

SEARCH_TOOL = ToolSpec(
    name=SEARCH_TOOL_NAME,
    description=SEARCH_TOOL_DESCRIPTION,
    parameters=SEARCH_TOOL_PARAMETERS,
)

KICKOFF_MESSAGE = "Resolve the bet described in your instructions."

UNPARSEABLE_VERDICT = Verdict(
    resolution_status=ResolutionStatus.UNRESOLVABLE,
    reasoning=VerdictReasoning(
        analysis="Unable to parse AI decision",
        evidence="Technical error in response parsing",
        conclusion="System error prevented proper resolution",
    ),
)


def next_phase(
    phase: ArbitrationPhase,
    *,
    requested_tools: bool,
    searches_performed: int,
    model_turns: int,
    config: ArbitrationConfig,
    verdict_ready: bool = False,
) -> ArbitrationPhase:
    """Phase after a model turn has been handled."""
    if phase is ArbitrationPhase.GATHERING:
        if verdict_ready:
            return ArbitrationPhase.DONE
        if not requested_tools:
            return ArbitrationPhase.DECIDING
        if searches_performed >= config.max_searches:
            return ArbitrationPhase.DECIDING
        if model_turns >= config.max_gathering_turns:
            return ArbitrationPhase.DECIDING
        return ArbitrationPhase.GATHERING
    return ArbitrationPhase.DONE


def parse_verdict(content: str | None) -> Verdict | None:
    """First JSON object in `content` that is a well-formed verdict, if any."""
    if not content:
        return None
    decoder = json.JSONDecoder()
    start = content.find("{")
    while start != -1:
        try:
            payload, _ = decoder.raw_decode(content, start)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict):
            try:
                return Verdict.model_validate(payload)
            except ValidationError:
                pass
        start = content.find("{", start + 1)
    return None


def format_reasoning(verdict: Verdict, searches_performed: int) -> str:
    r = verdict.reasoning
    return (
        f"{r.analysis}\n\nEvidence: {r.evidence}\n\nConclusion: {r.conclusion}"
        f"\n\nSources consulted: {searches_performed} web searches performed"
    )


def check_preconditions(market: Market, config: ArbitrationConfig, now: datetime) -> None:
    """Reject markets that may not be arbitrated, before any external call."""
    if market.resolved:
        raise BetResolvedError()
    if market.arbitrator_type is not ArbitratorType.AI:
        raise NotAIBetError()
    if not market.deadline_passed(now):
        raise DeadlineNotPassedError()
    for text in (market.title, market.description):
        if find_injection_marker(text, config.injection_markers):
            logger.warning(f"Market {market.id} rejected: injection marker in market text")
            raise SecurityViolationError("Suspicious content detected in bet")


async def _converse(
    reasoning_service: ReasoningService,
    system_prompt: str,
    history: list[ChatMessage],
    tools: list[ToolSpec],
    config: ArbitrationConfig,
) -> ReasoningTurn:
    async with asyncio.timeout(config.model_timeout_seconds):
        return await reasoning_service.converse(system_prompt, history, tools)


def _record_turn(session: ArbitrationSession, turn: ReasoningTurn) -> None:
    session.model_turns += 1
    if turn.content or turn.tool_calls:
        session.history.append(
            ChatMessage(role="assistant", content=turn.content or "", tool_calls=turn.tool_calls)
        )


async def _run_session(
    market: Market,
    session: ArbitrationSession,
    reasoning_service: ReasoningService,
    search_service: WebSearchService,
    config: ArbitrationConfig,
) -> Verdict:
    system_prompt = build_arbitrator_prompt(market, config.max_searches)
    session.history.append(ChatMessage(role="user", content=KICKOFF_MESSAGE))
    verdict: Verdict | None = None

    while session.phase is ArbitrationPhase.GATHERING:
        turn = await _converse(
            reasoning_service, system_prompt, session.history, [SEARCH_TOOL], config
        )
        _record_turn(session, turn)

        for call in turn.tool_calls:
            result = await run_search_call(call, session, search_service, config)
            session.history.append(
                ChatMessage(
                    role="tool", content=result, tool_call_id=call.id, tool_name=call.name
                )
            )

        if not turn.tool_calls:
            verdict = parse_verdict(turn.content)

        session.phase = next_phase(
            session.phase,
            requested_tools=bool(turn.tool_calls),
            searches_performed=session.searches_performed,
            model_turns=session.model_turns,
            config=config,
            verdict_ready=verdict is not None,
        )
        logger.debug(f"Market {market.id}: turn {session.model_turns} -> {session.phase}")

    if session.phase is ArbitrationPhase.DECIDING:
        logger.info(
            f"Market {market.id}: research complete after "
            f"{session.searches_performed} search(es), requesting verdict"
        )
        session.history.append(
            ChatMessage(
                role="user", content=build_final_decision_prompt(session.searches_performed)
            )
        )
        turn = await _converse(reasoning_service, system_prompt, session.history, [], config)
        _record_turn(session, turn)
        verdict = parse_verdict(turn.content)
        if verdict is None:
            logger.error(f"Market {market.id}: failed to parse AI verdict")
            verdict = UNPARSEABLE_VERDICT
        session.phase = next_phase(
            session.phase,
            requested_tools=False,
            searches_performed=session.searches_performed,
            model_turns=session.model_turns,
            config=config,
        )

    return verdict


async def arbitrate_market(
    market: Market,
    reasoning_service: ReasoningService,
    search_service: WebSearchService,
    config: ArbitrationConfig | None = None,
    now: datetime | None = None,
) -> ArbitrationResult:
    """
    Research a market on the web and return its outcome.

    Raises:
        BetResolvedError, NotAIBetError, DeadlineNotPassedError: market not arbitrable
        SecurityViolationError: injection marker in market text or a model query
        UnresolvableError: the model could not establish the truth
        ArbitrationUnavailableError: reasoning service failed or the run timed out
    """
    config = config or ArbitrationConfig()
    check_preconditions(market, config, now or utc_now())

    session = ArbitrationSession()
    logger.info(f"Arbitrating market {market.id}: {market.title}")
    try:
        async with asyncio.timeout(config.timeout_seconds):
            verdict = await _run_session(
                market, session, reasoning_service, search_service, config
            )
    except TimeoutError as e:
        logger.error(f"Arbitration of market {market.id} timed out")
        raise ArbitrationUnavailableError("AI arbitration timed out") from e
    except ReasoningServiceError as e:
        logger.error(f"Arbitration of market {market.id} failed: {e}")
        raise ArbitrationUnavailableError() from e

    if verdict.resolution_status is ResolutionStatus.UNRESOLVABLE:
        logger.info(f"Market {market.id} is unresolvable: {verdict.reasoning.conclusion}")
        raise UnresolvableError(verdict.reasoning.conclusion or "Insufficient evidence")

    outcome = Outcome.from_bool(verdict.resolution_status is ResolutionStatus.RESOLVED_TRUE)
    logger.info(
        f"Market {market.id} arbitrated as {outcome} after "
        f"{session.searches_performed} search(es)"
    )
    return ArbitrationResult(
        outcome=outcome,
        reasoning=format_reasoning(verdict, session.searches_performed),
        sources=session.sources[: config.max_sources],
        searches_performed=session.searches_performed,
        queries=list(session.queries),
    )
