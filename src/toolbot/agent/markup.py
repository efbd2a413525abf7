"""Fallback parser for tool calls written as inline markup.

Some models, even when offered native tool calling, answer with the call
spelled out in their text instead:

    <tool_call>
    <function=python>
    <parameter=operation>
    run
    </parameter>
    <parameter=code>
    print(1 + 1)
    </parameter>
    </function>
    </tool_call>

This module recognises exactly one such call. It is a best-effort scanner
over unreliable text: anything unterminated, duplicated or otherwise
ambiguous is reported as "no call" instead of being guessed at.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field

from toolbot.llm.message import ToolCallPart

logger = logging.getLogger(__name__)

TOOL_CALL_OPEN = "<tool_call>"
FUNCTION_OPEN = "<function="
FUNCTION_CLOSE = "</function>"
PARAM_OPEN = "<parameter="
PARAM_CLOSE = "</parameter>"
TAG_END = ">"

# every tag that marks the start of a markup fragment
_FRAGMENT_TAGS = (
    "<tool_call",
    "<function",
    "<parameter",
    "</parameter",
    "</function",
    "</tool_call",
)

FALLBACK_REPLY = (
    "I tried to run a tool but could not complete the action. "
    "Please try rephrasing your request."
)

_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


@dataclass
class MarkupCall:
    """A tool call recovered from message text."""

    name: str
    arguments: dict[str, str] = field(default_factory=dict)

    def to_part(self) -> ToolCallPart:
        """Synthesize a structured tool call part for the conversation."""
        return ToolCallPart(
            id=f"markup_{uuid.uuid4().hex[:8]}",
            name=self.name,
            arguments=json.dumps(self.arguments),
        )


class _Scanner:
    """Cursor over a string that advances past tag boundaries."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos

    def skip_past(self, token: str) -> bool:
        """Move past the next ``token``. False if it does not occur."""
        idx = self.text.find(token, self.pos)
        if idx < 0:
            return False
        self.pos = idx + len(token)
        return True

    def read_until(self, token: str) -> str | None:
        """Consume and return text up to ``token``; None if unterminated."""
        idx = self.text.find(token, self.pos)
        if idx < 0:
            return None
        chunk = self.text[self.pos : idx]
        self.pos = idx + len(token)
        return chunk


def parse_markup_call(content: str) -> MarkupCall | None:
    """Extract a single tool call from inline markup.

    Returns None when there is no markup, when it is malformed, when more
    than one function tag appears, or when the call carries no parameters.
    """
    start = content.find(FUNCTION_OPEN)
    if start < 0:
        return None

    if content.find(FUNCTION_OPEN, start + len(FUNCTION_OPEN)) >= 0:
        logger.debug("Markup contains several function tags, ignoring")
        return None

    head = _Scanner(content, start + len(FUNCTION_OPEN))
    name = head.read_until(TAG_END)
    if name is None:
        return None
    name = name.strip()
    if not _NAME_RE.match(name):
        return None

    close = content.find(FUNCTION_CLOSE, head.pos)
    body = _Scanner(content[: close if close >= 0 else len(content)], head.pos)

    arguments: dict[str, str] = {}
    while body.skip_past(PARAM_OPEN):
        key = body.read_until(TAG_END)
        if key is None:
            return None
        key = key.strip()
        if not _NAME_RE.match(key) or key in arguments:
            return None
        value = body.read_until(PARAM_CLOSE)
        if value is None:
            return None
        arguments[key] = value.strip()

    # A call without parameters is indistinguishable from a stray tag
    if not arguments:
        return None

    logger.info("Parsed markup tool call: %s with %d args", name, len(arguments))
    return MarkupCall(name=name, arguments=arguments)


def strip_markup(content: str) -> str:
    """Remove a dangling tool-call fragment from a final answer.

    A fragment starts at the first opening or closing tag of the markup
    (``<tool_call``, ``<function``, ``<parameter`` and their closers), or at
    a tag cut off at the very end of the text. Text before the fragment is
    kept. If nothing but the fragment is there, a neutral reply is
    substituted.
    """
    idx = _fragment_start(content)
    if idx < 0:
        return content.strip()

    before = content[:idx].strip()
    if before:
        return before
    return FALLBACK_REPLY


def _fragment_start(content: str) -> int:
    positions = [i for i in (content.find(tag) for tag in _FRAGMENT_TAGS) if i >= 0]
    if positions:
        return min(positions)

    # tag cut off mid-name, e.g. "<tool_ca" or "</"
    tail_at = content.rfind("<")
    if tail_at >= 0:
        tail = content[tail_at:].rstrip()
        if len(tail) >= 2 and any(tag.startswith(tail) for tag in _FRAGMENT_TAGS):
            return tail_at
    return -1
