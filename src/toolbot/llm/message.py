"""Message types exchanged between the agent loop and the model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class TextPart:
    """A text content part."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ToolCallPart:
    """A tool call content part."""

    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str = ""
    arguments: str = ""  # JSON string


@dataclass
class ToolResultPart:
    """A tool result content part."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = ""
    content: str = ""
    is_error: bool = False


ContentPart = TextPart | ToolCallPart | ToolResultPart


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is kept as the raw JSON payload; the tool name is not
    checked against any registry here.
    """

    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the argument payload into an ordered key/value map.

        Raises:
            ValueError: The payload is not a JSON object.
        """
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            decoded = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise ValueError(f"arguments are not valid JSON: {e}") from e
        if not isinstance(decoded, dict):
            raise ValueError(
                f"arguments must be a JSON object, got {type(decoded).__name__}"
            )
        return decoded


@dataclass
class TokenUsage:
    """Token usage stats from an LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Message:
    """A conversation message with typed content parts."""

    role: Role
    parts: list[ContentPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Get concatenated text content."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Get all tool calls in this message, in the order the model sent them."""
        return [
            ToolCall(id=p.id, name=p.name, arguments=p.arguments)
            for p in self.parts
            if isinstance(p, ToolCallPart)
        ]

    @property
    def tool_call_id(self) -> str | None:
        """Correlation id of the invocation a tool message answers."""
        for p in self.parts:
            if isinstance(p, ToolResultPart):
                return p.tool_call_id
        return None

    # --- Convenience constructors ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text=text)])

    @classmethod
    def assistant(
        cls, text: str = "", tool_calls: list[ToolCallPart] | None = None
    ) -> Message:
        parts: list[ContentPart] = []
        if text:
            parts.append(TextPart(text=text))
        if tool_calls:
            parts.extend(tool_calls)
        return cls(role="assistant", parts=parts)

    @classmethod
    def tool_result(
        cls, tool_call_id: str, content: str, is_error: bool = False
    ) -> Message:
        if not tool_call_id:
            raise ValueError("tool messages must carry the id of the call they answer")
        return cls(
            role="tool",
            parts=[
                ToolResultPart(
                    tool_call_id=tool_call_id, content=content, is_error=is_error
                )
            ],
        )

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to OpenAI chat format (what litellm expects)."""
        if self.role == "tool":
            for p in self.parts:
                if isinstance(p, ToolResultPart):
                    return {
                        "role": "tool",
                        "tool_call_id": p.tool_call_id,
                        "content": p.content,
                    }
            return {"role": "tool", "content": ""}

        if self.role == "assistant":
            result: dict[str, Any] = {"role": "assistant"}
            text_parts = [p for p in self.parts if isinstance(p, TextPart)]
            tc_parts = [p for p in self.parts if isinstance(p, ToolCallPart)]

            if text_parts:
                result["content"] = "".join(p.text for p in text_parts)
            else:
                result["content"] = None

            if tc_parts:
                result["tool_calls"] = [
                    {
                        "id": p.id,
                        "type": "function",
                        "function": {"name": p.name, "arguments": p.arguments},
                    }
                    for p in tc_parts
                ]

            return result

        # system or user
        return {"role": self.role, "content": self.text}
