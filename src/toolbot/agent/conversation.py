"""Conversation — the ordered message sequence of one chat invocation."""

from __future__ import annotations

from dataclasses import dataclass, field

from toolbot.llm.message import Message


@dataclass
class Conversation:
    """Append-only message history for a single request.

    Starts with one system message and one user message. Nothing is
    persisted: the conversation is dropped when the chat call returns.
    """

    messages: list[Message] = field(default_factory=list)

    @classmethod
    def start(cls, system_prompt: str, utterance: str) -> Conversation:
        return cls(messages=[Message.system(system_prompt), Message.user(utterance)])

    def append(self, message: Message) -> None:
        if message.role == "tool" and not message.tool_call_id:
            raise ValueError("tool message without a tool_call_id")
        self.messages.append(message)

    def grow(self, assistant_msg: Message, tool_results: list[Message]) -> None:
        """Append an assistant message followed by its tool results."""
        self.append(assistant_msg)
        for tr in tool_results:
            self.append(tr)

    def get_messages(self) -> list[Message]:
        """Snapshot of the messages, safe to hand to the transport."""
        return list(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
