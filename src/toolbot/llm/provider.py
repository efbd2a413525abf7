"""Model transport — a thin request/response client over litellm.

One call sends the whole conversation plus the tool schema bundle and
receives exactly one assistant message. Streaming is disabled: the agent
loop only acts on complete responses.

litellm handles provider-specific details and reads API keys from the
environment. The default target is a local Ollama server
(``ollama_chat/<model>`` with ``api_base`` pointing at it), but any litellm
model string works.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from toolbot.errors import TransportError
from toolbot.llm.message import (
    ContentPart,
    Message,
    TextPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
)

if TYPE_CHECKING:
    from litellm import ModelResponse

logger = logging.getLogger(__name__)

# Tool specs in OpenAI function format
ToolSpec = dict[str, Any]

_LOG_CONTENT_PREVIEW = 500


@dataclass
class ProviderConfig:
    """Configuration for the model transport."""

    model: str
    api_base: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float = 120.0  # model responses can be slow


@dataclass
class GenerateResult:
    """Result of a single model call."""

    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@runtime_checkable
class ModelTransport(Protocol):
    """Protocol for the model backend the agent loop talks to."""

    @property
    def config(self) -> ProviderConfig: ...

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
    ) -> GenerateResult:
        """Send the conversation and return one assistant message.

        Raises:
            TransportError: Backend unreachable, non-success status or
                malformed payload.
        """
        ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """Model transport backed by ``litellm.acompletion``."""

    _config: ProviderConfig

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
    ) -> GenerateResult:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [m.to_openai_dict() for m in messages],
            "stream": False,
            "timeout": self._config.timeout,
        }

        if tools:
            kwargs["tools"] = tools

        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature

        if self._config.max_tokens is not None:
            kwargs["max_tokens"] = self._config.max_tokens

        try:
            response = await _acompletion_with_retry(**kwargs)
        except Exception as e:
            logger.error("Model request to %s failed: %s", self._config.model, e)
            raise TransportError(f"calling model {self._config.model}: {e}") from e

        result = _response_to_result(response)
        _log_response(result)
        return result


@retry(
    retry=retry_if_exception_type((ConnectionError, TimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _acompletion_with_retry(**kwargs: Any) -> ModelResponse:
    """Call litellm.acompletion with retry on transient connection errors."""
    import litellm

    return await litellm.acompletion(**kwargs)


def _response_to_result(response: Any) -> GenerateResult:
    """Convert a litellm ``ModelResponse`` into our message types.

    litellm responses have the OpenAI ChatCompletion shape:
      response.choices[0].message.{role, content, tool_calls},
      response.choices[0].finish_reason, response.usage
    """
    choices = getattr(response, "choices", None)
    if not choices:
        raise TransportError("malformed model response: no choices")

    choice = choices[0]
    message = getattr(choice, "message", None)
    if message is None:
        raise TransportError("malformed model response: choice has no message")

    content = getattr(message, "content", None) or ""
    if not isinstance(content, str):
        raise TransportError(
            f"malformed model response: content is {type(content).__name__}"
        )

    parts: list[ContentPart] = []
    if content:
        parts.append(TextPart(text=content))

    for tc in getattr(message, "tool_calls", None) or []:
        parts.append(_tool_call_part(tc))

    usage = TokenUsage()
    raw_usage = getattr(response, "usage", None)
    if raw_usage:
        usage = TokenUsage(
            input_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(raw_usage, "total_tokens", 0) or 0,
        )

    return GenerateResult(
        message=Message(role="assistant", parts=parts),
        usage=usage,
        finish_reason=getattr(choice, "finish_reason", None),
    )


def _tool_call_part(tc: Any) -> ToolCallPart:
    function = getattr(tc, "function", None)
    name = getattr(function, "name", None) if function else None
    if not name:
        raise TransportError("malformed model response: tool call without a name")

    arguments = getattr(function, "arguments", None)
    if arguments is None:
        arguments = ""
    elif not isinstance(arguments, str):
        # Some backends hand back an already-decoded object
        arguments = json.dumps(arguments)

    tc_id = getattr(tc, "id", None) or f"call_{uuid.uuid4().hex[:8]}"
    return ToolCallPart(id=tc_id, name=name, arguments=arguments)


def _log_response(result: GenerateResult) -> None:
    text = result.message.text
    logger.info(
        "Model response: content_len=%d tool_calls=%d finish=%s",
        len(text),
        len(result.tool_calls),
        result.finish_reason,
    )
    if text:
        if len(text) > _LOG_CONTENT_PREVIEW:
            logger.debug("Content (truncated): %s...", text[:_LOG_CONTENT_PREVIEW])
        else:
            logger.debug("Content: %s", text)
    for i, tc in enumerate(result.tool_calls):
        logger.debug("tool_call[%d]: %s(%s)", i, tc.name, tc.arguments)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    model: str,
    api_base: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float = 120.0,
) -> ModelTransport:
    """Create a litellm-backed model transport.

    Args:
        model: Model name with provider prefix (e.g. "ollama_chat/qwen3-coder:30b",
               "openai/gpt-4o"). litellm detects the provider from the prefix.
        api_base: Base URL of the backend (needed for local Ollama servers).
        temperature: Sampling temperature.
        max_tokens: Max output tokens.
        timeout: Per-request timeout in seconds.
    """
    config = ProviderConfig(
        model=model,
        api_base=api_base,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    return LiteLLMProvider(_config=config)
