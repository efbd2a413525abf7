"""Tool system — base classes, registry, and output truncation."""

from toolbot.tool.base import BaseTool, NoParams, ToolResult, ToolOk, ToolError
from toolbot.tool.registry import ToolRegistry
from toolbot.tool.truncation import truncate_output

__all__ = [
    "BaseTool",
    "NoParams",
    "ToolResult",
    "ToolOk",
    "ToolError",
    "ToolRegistry",
    "truncate_output",
]
