"""toolbot — a conversational agent that lets a language model call tools."""

__version__ = "0.1.0"
