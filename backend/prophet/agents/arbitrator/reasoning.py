"""Reasoning service interface and its PydanticAI implementation.

The arbitration loop drives the conversation itself (it must count and gate
every search), so the model is called one request at a time through
`pydantic_ai.direct.model_request` rather than through an Agent run.
"""

import logging
import os
from typing import Protocol

from pydantic_ai.direct import model_request
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    ModelResponsePart,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings
from pydantic_ai.tools import ToolDefinition

from prophet.config import ArbitrationConfig, Settings
from prophet.llm_providers import LLMProvider, get_provider_for_model_string

from .models import ChatMessage, ReasoningTurn, ToolCall, ToolSpec

logger = logging.getLogger(__name__)


class ReasoningServiceError(Exception):
    """The reasoning model could not produce a turn."""

    pass


class ReasoningService(Protocol):
    async def converse(
        self,
        system_prompt: str,
        history: list[ChatMessage],
        tools: list[ToolSpec],
    ) -> ReasoningTurn:
        """Send the conversation so far; an empty `tools` list means answer in text."""
        ...


def to_model_messages(system_prompt: str, history: list[ChatMessage]) -> list[ModelMessage]:
    """Translate the loop's conversation into PydanticAI message objects."""
    messages: list[ModelMessage] = []
    pending: list[ModelRequestPart] = [SystemPromptPart(content=system_prompt)]

    for message in history:
        if message.role == "assistant":
            if pending:
                messages.append(ModelRequest(parts=pending))
                pending = []
            parts: list[ModelResponsePart] = []
            if message.content:
                parts.append(TextPart(content=message.content))
            parts.extend(
                ToolCallPart(tool_name=c.name, args=c.arguments, tool_call_id=c.id)
                for c in message.tool_calls
            )
            messages.append(ModelResponse(parts=parts))
        elif message.role == "tool":
            pending.append(
                ToolReturnPart(
                    tool_name=message.tool_name or "",
                    content=message.content,
                    tool_call_id=message.tool_call_id or "",
                )
            )
        else:
            pending.append(UserPromptPart(content=message.content))

    if pending:
        messages.append(ModelRequest(parts=pending))
    return messages


def from_model_response(response: ModelResponse) -> ReasoningTurn:
    texts: list[str] = []
    calls: list[ToolCall] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            texts.append(part.content)
        elif isinstance(part, ToolCallPart):
            try:
                arguments = part.args_as_dict()
            except ValueError:
                logger.warning(f"Unparseable arguments for tool call {part.tool_call_id}")
                arguments = {}
            calls.append(ToolCall(id=part.tool_call_id, name=part.tool_name, arguments=arguments))
    content = "\n".join(t for t in texts if t) or None
    return ReasoningTurn(content=content, tool_calls=calls)


class PydanticAIReasoningService:
    """ReasoningService over any PydanticAI model (name string or Model instance)."""

    def __init__(
        self,
        model: Model | str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        decision_max_tokens: int = 2000,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.decision_max_tokens = decision_max_tokens

    async def converse(
        self,
        system_prompt: str,
        history: list[ChatMessage],
        tools: list[ToolSpec],
    ) -> ReasoningTurn:
        settings = ModelSettings(
            temperature=self.temperature,
            max_tokens=self.max_tokens if tools else self.decision_max_tokens,
        )
        parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=t.name,
                    description=t.description,
                    parameters_json_schema=t.parameters,
                )
                for t in tools
            ],
            allow_text_output=True,
        )
        try:
            response = await model_request(
                self.model,
                to_model_messages(system_prompt, history),
                model_settings=settings,
                model_request_parameters=parameters,
            )
        except Exception as e:
            raise ReasoningServiceError(f"Reasoning model request failed: {e}") from e
        return from_model_response(response)


def _setup_api_keys(settings: Settings) -> None:
    """Export provider keys from settings for PydanticAI's model inference."""
    if settings.openai_api_key:
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    if settings.anthropic_api_key:
        os.environ["ANTHROPIC_API_KEY"] = settings.anthropic_api_key


def create_reasoning_service(
    settings: Settings, config: ArbitrationConfig | None = None
) -> PydanticAIReasoningService:
    config = config or settings.arbitration
    _setup_api_keys(settings)
    provider = get_provider_for_model_string(config.model)
    key = {
        LLMProvider.OPENAI: settings.openai_api_key,
        LLMProvider.ANTHROPIC: settings.anthropic_api_key,
    }[provider]
    if not key:
        logger.warning(f"No API key configured for {provider}; arbitration requests will fail")
    return PydanticAIReasoningService(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        decision_max_tokens=config.decision_max_tokens,
    )
