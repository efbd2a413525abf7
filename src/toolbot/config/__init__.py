"""Configuration — Pydantic models for toolbot settings."""

from __future__ import annotations

import json
import os
from typing import Any

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """Model transport configuration.

    Model names use litellm's provider-prefix format:
        "ollama_chat/qwen3-coder:30b"
        "openai/gpt-4o"

    Hosted providers read their API keys from env vars via litellm.
    """

    model: str = Field(default="ollama_chat/qwen3-coder:30b")
    api_base: str | None = Field(
        default="http://localhost:11434",
        description="Backend base URL (for Ollama or other self-hosted servers)",
    )
    temperature: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)
    timeout: float = Field(default=120.0, description="Per-request timeout in seconds")


class AgentSettings(BaseModel):
    """Agent loop configuration."""

    max_rounds: int = Field(default=20, ge=1, description="Max model rounds per chat")


class WorkspaceConfig(BaseModel):
    """Shared workspace for the python and bash tools."""

    path: str = Field(default="workspace")


class CalendarConfig(BaseModel):
    """Google Calendar OAuth settings."""

    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    redirect_url: str = Field(default="urn:ietf:wg:oauth:2.0:oob")
    token_file: str = Field(default="google_token.json")


class ToolbotConfig(BaseModel):
    """Top-level toolbot configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> ToolbotConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TOOLBOT_MODEL         - Model (litellm format with provider prefix)
            TOOLBOT_API_BASE      - Backend base URL
            TOOLBOT_TIMEOUT       - Model request timeout in seconds
            TOOLBOT_MAX_ROUNDS    - Round bound per chat
            TOOLBOT_WORKSPACE     - Workspace directory for python/bash tools
            GOOGLE_CLIENT_ID      - Calendar OAuth client id
            GOOGLE_CLIENT_SECRET  - Calendar OAuth client secret
            GOOGLE_REDIRECT_URL   - Calendar OAuth redirect URL
            GOOGLE_TOKEN_FILE     - Where the calendar token is stored
        """
        from dotenv import find_dotenv, load_dotenv

        # .env next to where toolbot is run, not next to the installed package
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        _override(config_data, "llm", "model", "TOOLBOT_MODEL")
        _override(config_data, "llm", "api_base", "TOOLBOT_API_BASE")
        _override(config_data, "llm", "timeout", "TOOLBOT_TIMEOUT", float)
        _override(config_data, "agent", "max_rounds", "TOOLBOT_MAX_ROUNDS", int)
        _override(config_data, "workspace", "path", "TOOLBOT_WORKSPACE")
        _override(config_data, "calendar", "client_id", "GOOGLE_CLIENT_ID")
        _override(config_data, "calendar", "client_secret", "GOOGLE_CLIENT_SECRET")
        _override(config_data, "calendar", "redirect_url", "GOOGLE_REDIRECT_URL")
        _override(config_data, "calendar", "token_file", "GOOGLE_TOKEN_FILE")

        return cls.model_validate(config_data)


def _override(
    data: dict[str, Any],
    section: str,
    key: str,
    env_var: str,
    convert: type = str,
) -> None:
    value = os.environ.get(env_var)
    if value:
        data.setdefault(section, {})[key] = convert(value)
