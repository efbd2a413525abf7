"""Tool registry — register, look up, describe and dispatch tools."""

from __future__ import annotations

import logging
from typing import Any

from toolbot.llm.message import ToolCall
from toolbot.tool.base import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available tools.

    Populated once at startup, then only read. One instance is built by the
    bootstrap and passed explicitly to every agent that needs it.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance. The last registration under a name wins."""
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool

    def register_many(self, tools: list[BaseTool]) -> None:
        """Register multiple tools."""
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name, or None if nothing is registered under it."""
        return self._tools.get(name)

    def all(self) -> list[BaseTool]:
        """All registered tools (order not significant)."""
        return list(self._tools.values())

    def names(self) -> list[str]:
        """Get all registered tool names."""
        return list(self._tools.keys())

    def schema_bundle(self) -> list[dict[str, Any]]:
        """Tool specs handed to the model, built from the current contents."""
        return [t.to_openai_spec() for t in self._tools.values()]

    async def dispatch(self, tool_call: ToolCall) -> tuple[str, bool]:
        """Run one tool call and return its result as text.

        Unknown tools and undecodable arguments are reported as error text,
        never raised.

        Returns:
            (content, is_error) tuple.
        """
        tool = self._tools.get(tool_call.name)
        if tool is None:
            logger.warning("Model requested unknown tool %s", tool_call.name)
            return (
                f"Unknown tool: {tool_call.name}. Available tools: {', '.join(self.names())}",
                True,
            )

        try:
            arguments = tool_call.parse_arguments()
        except ValueError as e:
            return f"Error: could not decode arguments for {tool_call.name}: {e}", True

        return await tool(arguments)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
