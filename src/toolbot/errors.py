"""Exception hierarchy for toolbot."""

from __future__ import annotations


class ToolbotError(Exception):
    """Base class for all toolbot errors."""


class AgentError(ToolbotError):
    """A chat invocation failed and has no answer to return."""


class TransportError(AgentError):
    """The model backend was unreachable or returned an unusable response."""


class MaxRoundsExceeded(AgentError):
    """The agent kept requesting tools past the round bound."""

    def __init__(self, max_rounds: int) -> None:
        self.max_rounds = max_rounds
        super().__init__(f"exceeded maximum tool rounds ({max_rounds})")


class ToolArgumentError(ToolbotError):
    """A tool received arguments it cannot act on.

    Raised from inside ``BaseTool.execute``; the tool wrapper turns it into
    result text for the model.
    """
