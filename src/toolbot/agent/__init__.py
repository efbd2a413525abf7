"""Agent system — the chat loop, conversation and markup fallback."""

from toolbot.agent.conversation import Conversation
from toolbot.agent.loop import ChatAgent, MAX_ROUNDS
from toolbot.agent.markup import MarkupCall, parse_markup_call, strip_markup
from toolbot.agent.prompt import SYSTEM_PROMPT

__all__ = [
    "ChatAgent",
    "Conversation",
    "MAX_ROUNDS",
    "MarkupCall",
    "SYSTEM_PROMPT",
    "parse_markup_call",
    "strip_markup",
]
