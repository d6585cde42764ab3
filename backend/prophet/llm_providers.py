"""LLM Provider and Model Enums for arbitrator model selection.

The arbitrator's model is a config string; these enums keep the supported
choices in one place and build the provider-prefixed names pydantic-ai expects.
"""

from enum import StrEnum


class LLMProvider(StrEnum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class OpenAIModel(StrEnum):
    """OpenAI models available via API."""

    GPT_4_1 = "gpt-4.1"
    GPT_4O = "gpt-4o"
    GPT_5 = "gpt-5"
    GPT_5_MINI = "gpt-5-mini"


class AnthropicModel(StrEnum):
    """Anthropic Claude models available via API."""

    CLAUDE_OPUS_4_5 = "claude-opus-4-5"
    CLAUDE_SONNET_4_5 = "claude-sonnet-4-5"
    CLAUDE_HAIKU_4_5 = "claude-haiku-4-5"


# =============================================================================
# Helper Functions
# =============================================================================


def get_model_string(model: OpenAIModel | AnthropicModel) -> str:
    """Get the pydantic-ai model string for any supported model.

    OpenAI models go through the Chat Completions API ('openai:' prefix), which
    is what the search_web function tool is declared against.
    """
    if isinstance(model, OpenAIModel):
        return f"openai:{model.value}"
    elif isinstance(model, AnthropicModel):
        return f"anthropic:{model.value}"
    return model.value


def get_provider_for_model_string(model: str) -> LLMProvider:
    """Determine the provider for a configured model string."""
    prefix = model.split(":", 1)[0]
    if prefix.startswith("openai"):
        return LLMProvider.OPENAI
    elif prefix == "anthropic":
        return LLMProvider.ANTHROPIC
    else:
        raise ValueError(f"Unknown model provider: {model}")
