"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from toolbot.errors import ToolArgumentError
from toolbot.tool.truncation import truncate_output

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class ToolResult:
    """Base result from a tool execution."""

    output: str = ""
    is_error: bool = False


@dataclass
class ToolOk(ToolResult):
    """Successful tool result.

    Also used when the underlying operation itself failed but the tool ran
    (a shell command exiting non-zero, failing tests): the output reports it.
    """

    is_error: bool = False


@dataclass
class ToolError(ToolResult):
    """The operation could not be attempted."""

    is_error: bool = True


class NoParams(BaseModel):
    """Parameter model for tools that take no arguments."""


class BaseTool(ABC, Generic[T]):
    """Base class for all tools.

    A tool exposes a unique ``name``, a ``description`` for the model, a
    parameter schema derived from ``param_model``, and ``execute``. Tools are
    registered once at startup and shared read-only between conversations,
    so ``execute`` must not keep per-call state on the instance.

    Usage:
        class MyParams(BaseModel):
            path: str
            offset: int = 0

        class MyTool(BaseTool[MyParams]):
            name = "my_tool"
            description = "Does something useful"
            param_model = MyParams

            async def execute(self, params: MyParams) -> ToolResult:
                return ToolOk(output="done")

    Cancellation arrives as ``asyncio.CancelledError`` at an ``await`` inside
    ``execute``; tools holding subprocesses must kill them and re-raise.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]] = NoParams

    async def __call__(self, arguments: dict[str, Any]) -> tuple[str, bool]:
        """Validate arguments, execute, truncate output.

        Failures never raise: they come back as error text.

        Returns:
            (content, is_error) tuple suitable for tool result messages.
        """
        try:
            params = self.param_model.model_validate(arguments)
        except ValidationError as e:
            return f"Invalid parameters for {self.name}: {e}", True

        try:
            result = await self.execute(params)  # type: ignore[arg-type]
        except ToolArgumentError as e:
            return f"Invalid parameters for {self.name}: {e}", True
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return f"Error executing {self.name}: {e}", True

        return truncate_output(result.output), result.is_error

    @abstractmethod
    async def execute(self, params: T) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    def parameter_schema(self) -> dict[str, Any]:
        """JSON schema describing the expected argument payload."""
        schema = self.param_model.model_json_schema()
        # Pydantic adds titles and $defs the model has no use for
        schema.pop("title", None)
        schema.pop("$defs", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def to_openai_spec(self) -> dict[str, Any]:
        """Convert to OpenAI function tool specification."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema(),
            },
        }
