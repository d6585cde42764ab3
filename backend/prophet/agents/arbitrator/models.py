"""Data models for the Arbitrator agent."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from prophet.settlement.models import Outcome


class ArbitrationPhase(StrEnum):
    """GATHERING: model may search. DECIDING: final verdict turn. DONE: verdict parsed."""

    GATHERING = "gathering"
    DECIDING = "deciding"
    DONE = "done"


class ResolutionStatus(StrEnum):
    RESOLVED_TRUE = "RESOLVED_TRUE"
    RESOLVED_FALSE = "RESOLVED_FALSE"
    UNRESOLVABLE = "UNRESOLVABLE"


# ============================================================================
# Reasoning service conversation
# ============================================================================


class ToolSpec(BaseModel):
    """Function tool offered to the reasoning model."""

    name: str
    description: str
    parameters: dict[str, Any]


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """One entry of the arbitration conversation."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None


class ReasoningTurn(BaseModel):
    """What the model produced for one request."""

    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


# ============================================================================
# Research state
# ============================================================================


class Source(BaseModel):
    url: str
    title: str


class ArbitrationSession(BaseModel):
    """In-memory state of one arbitration run."""

    phase: ArbitrationPhase = ArbitrationPhase.GATHERING
    queries: list[str] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    searches_performed: int = 0
    model_turns: int = 0
    history: list[ChatMessage] = Field(default_factory=list)

    def add_sources(self, sources: list[Source]) -> int:
        """Append sources not seen before (by URL); return how many were new."""
        seen = {s.url for s in self.sources}
        added = 0
        for source in sources:
            if source.url not in seen:
                self.sources.append(source)
                seen.add(source.url)
                added += 1
        return added


# ============================================================================
# Verdict
# ============================================================================


class VerdictReasoning(BaseModel):
    analysis: str = ""
    evidence: str = ""
    conclusion: str = ""


class Verdict(BaseModel):
    """Structured decision the model must return in the DECIDING phase."""

    resolution_status: ResolutionStatus
    reasoning: VerdictReasoning = Field(default_factory=VerdictReasoning)


class ArbitrationResult(BaseModel):
    """Result of an arbitration that reached a yes/no outcome."""

    outcome: Outcome
    reasoning: str
    sources: list[Source]
    searches_performed: int
    queries: list[str]
