"""Shared fixtures: a scripted model transport and small tools."""

from __future__ import annotations

import asyncio
import json
from typing import Any, ClassVar

import pytest
from pydantic import BaseModel

from toolbot.llm.message import Message, TextPart, ToolCallPart
from toolbot.llm.provider import GenerateResult, ProviderConfig
from toolbot.tool.base import BaseTool, ToolOk, ToolResult
from toolbot.tool.registry import ToolRegistry


class ScriptedTransport:
    """Model transport that replays canned replies and records requests.

    Each script entry is a ``Message``, a ``GenerateResult`` or an
    exception instance to raise.
    """

    def __init__(self, script: list[Any]) -> None:
        self._script = list(script)
        self._config = ProviderConfig(model="fake/model")
        self.requests: list[list[Message]] = []
        self.tool_bundles: list[list[dict[str, Any]] | None] = []

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
    ) -> GenerateResult:
        self.requests.append(list(messages))
        self.tool_bundles.append(tools)
        if not self._script:
            raise AssertionError("transport called more often than scripted")
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, GenerateResult):
            return item
        return GenerateResult(message=item)

    @property
    def calls(self) -> int:
        return len(self.requests)


def text_reply(text: str) -> Message:
    return Message(role="assistant", parts=[TextPart(text=text)])


def call_reply(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> Message:
    """Assistant message with structured tool calls ``(id, name, args)``."""
    return Message.assistant(
        text,
        tool_calls=[
            ToolCallPart(id=tc_id, name=name, arguments=json.dumps(args))
            for tc_id, name, args in calls
        ],
    )


class EchoParams(BaseModel):
    text: str
    delay: float = 0.0


class EchoTool(BaseTool[EchoParams]):
    """Echoes its input after an optional delay, recording call order."""

    name: ClassVar[str] = "echo"
    description: ClassVar[str] = "Echo the given text"
    param_model: ClassVar[type[BaseModel]] = EchoParams

    def __init__(self) -> None:
        self.seen: list[str] = []

    async def execute(self, params: EchoParams) -> ToolResult:
        if params.delay:
            await asyncio.sleep(params.delay)
        self.seen.append(params.text)
        return ToolOk(output=f"echo: {params.text}")


class ExplodingTool(BaseTool):
    """Always raises from execute."""

    name: ClassVar[str] = "explode"
    description: ClassVar[str] = "Fails every time"

    async def execute(self, params: BaseModel) -> ToolResult:
        raise RuntimeError("kaboom")


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def registry(echo_tool: EchoTool) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register_many([echo_tool, ExplodingTool()])
    return reg
