"""Arbitrator Agent package."""

from .loop import arbitrate_market, next_phase, parse_verdict
from .main import run_arbitrator
from .models import ArbitrationPhase, ArbitrationResult, ResolutionStatus
from .reasoning import (
    PydanticAIReasoningService,
    ReasoningService,
    ReasoningServiceError,
    create_reasoning_service,
)

__all__ = [
    "ArbitrationPhase",
    "ArbitrationResult",
    "PydanticAIReasoningService",
    "ReasoningService",
    "ReasoningServiceError",
    "ResolutionStatus",
    "arbitrate_market",
    "create_reasoning_service",
    "next_phase",
    "parse_verdict",
    "run_arbitrator",
]
