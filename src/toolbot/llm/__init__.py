"""LLM abstraction layer — message types and the litellm model transport."""

from toolbot.llm.message import (
    Message,
    ContentPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    ToolCall,
    TokenUsage,
)
from toolbot.llm.provider import (
    GenerateResult,
    LiteLLMProvider,
    ModelTransport,
    ProviderConfig,
    create_provider,
)

__all__ = [
    "Message",
    "ContentPart",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "ToolCall",
    "TokenUsage",
    "GenerateResult",
    "LiteLLMProvider",
    "ModelTransport",
    "ProviderConfig",
    "create_provider",
]
