"""The agent loop — turns one utterance into model calls and tool runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from toolbot.agent.conversation import Conversation
from toolbot.agent.markup import parse_markup_call, strip_markup
from toolbot.agent.prompt import SYSTEM_PROMPT
from toolbot.errors import MaxRoundsExceeded, TransportError
from toolbot.llm.message import Message, ToolCall
from toolbot.llm.provider import GenerateResult, ModelTransport
from toolbot.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_ROUNDS = 20  # enough for write/test/fix cycles

# Observer callbacks: they see progress but never change the outcome
OnRoundBegin = Callable[[int], None] | None  # (round_number)
OnToolCall = Callable[[str, str, str], None] | None  # (tool_call_id, name, arguments)
OnToolResult = Callable[[str, str, str, bool], None] | None  # (id, name, content, is_error)


class ChatAgent:
    """Drives the model/tool protocol for independent chat requests.

    Each ``chat`` call builds a fresh conversation, so one agent can serve
    many concurrent requests. Within a request everything is sequential:
    one model call at a time, and tool calls run in the order the model
    issued them.

    Per round:
    1. Send the conversation and the registry's schema bundle to the model
    2. Take structured tool calls; if there are none, try the markup fallback
    3. No calls: return the sanitized text
    4. Otherwise run each call, append the assistant message and one tool
       result per call, and go again

    Only transport failures and the round bound end a chat with an error.
    Unknown tools and tool failures become tool results the model can react to.
    """

    def __init__(
        self,
        provider: ModelTransport,
        tool_registry: ToolRegistry,
        system_prompt: str = SYSTEM_PROMPT,
        max_rounds: int = MAX_ROUNDS,
        on_round_begin: OnRoundBegin = None,
        on_tool_call: OnToolCall = None,
        on_tool_result: OnToolResult = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.provider = provider
        self.tool_registry = tool_registry
        self.system_prompt = system_prompt
        self.max_rounds = max_rounds
        self.on_round_begin = on_round_begin
        self.on_tool_call = on_tool_call
        self.on_tool_result = on_tool_result

    async def chat(self, utterance: str) -> str:
        """Answer one user utterance.

        Raises:
            TransportError: The model backend failed; nothing is kept.
            MaxRoundsExceeded: The model was still calling tools at the bound.
            asyncio.CancelledError: The caller cancelled the request.
        """
        conversation = Conversation.start(self.system_prompt, utterance)
        try:
            return await self.run(conversation)
        except asyncio.CancelledError:
            logger.info("Chat cancelled after %d messages", len(conversation))
            raise

    async def run(self, conversation: Conversation) -> str:
        """Run rounds over an already initialized conversation."""
        round_no = 0
        while round_no < self.max_rounds:
            round_no += 1
            logger.info("Round %d/%d", round_no, self.max_rounds)
            if self.on_round_begin:
                self.on_round_begin(round_no)

            result = await self._send(conversation)
            message = result.message
            tool_calls = message.tool_calls

            if not tool_calls:
                message = self._recover_markup_call(message)
                tool_calls = message.tool_calls

            if not tool_calls:
                logger.info("Chat completed after %d rounds", round_no)
                return strip_markup(message.text)

            tool_results = []
            for tc in tool_calls:
                tool_results.append(await self._run_tool(tc))
            conversation.grow(message, tool_results)

        logger.warning("Chat hit max rounds (%d)", self.max_rounds)
        raise MaxRoundsExceeded(self.max_rounds)

    async def _send(self, conversation: Conversation) -> GenerateResult:
        tools = self.tool_registry.schema_bundle()
        try:
            return await self.provider.complete(
                conversation.get_messages(), tools if tools else None
            )
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"model transport failed: {e}") from e

    def _recover_markup_call(self, message: Message) -> Message:
        """Turn a markup tool call in the text into a structured one.

        Markup naming a tool that is not registered is left as plain text.
        """
        call = parse_markup_call(message.text)
        if call is None:
            return message
        if call.name not in self.tool_registry:
            logger.info("Markup names unregistered tool %s, treating as text", call.name)
            return message
        return Message.assistant(message.text, tool_calls=[call.to_part()])

    async def _run_tool(self, tc: ToolCall) -> Message:
        logger.info("Executing tool %s (id=%s)", tc.name, tc.id)
        if self.on_tool_call:
            self.on_tool_call(tc.id, tc.name, tc.arguments)

        try:
            content, is_error = await self.tool_registry.dispatch(tc)
            content = str(content)
        except Exception as e:
            logger.error("Tool %s failed: %s", tc.name, e, exc_info=True)
            content = f"Error: {e}"
            is_error = True

        if is_error:
            logger.info("Tool %s returned an error: %s", tc.name, content[:200])
        if self.on_tool_result:
            self.on_tool_result(tc.id, tc.name, content, is_error)

        return Message.tool_result(tc.id, content, is_error)
