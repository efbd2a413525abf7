"""Process bootstrap — build the provider and the tool registry."""

from __future__ import annotations

import logging

from toolbot.config import ToolbotConfig
from toolbot.llm.provider import ModelTransport, create_provider
from toolbot.tool.registry import ToolRegistry
from toolbot.tool.workspace import Workspace

logger = logging.getLogger(__name__)


def build_provider(config: ToolbotConfig) -> ModelTransport:
    return create_provider(
        model=config.llm.model,
        api_base=config.llm.api_base,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
        timeout=config.llm.timeout,
    )


def build_registry(config: ToolbotConfig, provider: ModelTransport) -> ToolRegistry:
    """Register every built-in tool. Done once, before any chat."""
    from toolbot.tool.builtin import (
        BashTool,
        CalendarTool,
        OCITool,
        PythonTool,
        ScrapeTool,
        TimeTool,
    )

    workspace = Workspace(config.workspace.path)
    try:
        workspace.ensure()
        logger.info("Workspace: %s", workspace.path)
    except OSError as e:
        logger.warning("Workspace warning: %s", e)

    registry = ToolRegistry()
    registry.register_many(
        [
            TimeTool(),
            PythonTool(workspace),
            BashTool(workspace),
            ScrapeTool(summarizer=provider),
            OCITool(),
            CalendarTool(
                client_id=config.calendar.client_id,
                client_secret=config.calendar.client_secret,
                redirect_url=config.calendar.redirect_url,
                token_file=config.calendar.token_file,
            ),
        ]
    )
    logger.info("Registered tools: %d", len(registry))
    return registry
