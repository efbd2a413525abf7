"""Bash tool — run shell commands in the shared workspace."""

from __future__ import annotations

import logging
import os
from typing import ClassVar

from pydantic import BaseModel, Field

from toolbot.errors import ToolArgumentError
from toolbot.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from toolbot.tool.process import run_process
from toolbot.tool.truncation import clean_terminal_output
from toolbot.tool.workspace import Workspace

logger = logging.getLogger(__name__)

BASH_TIMEOUT = 60.0
MAX_OUTPUT_BYTES = 50_000


class BashParams(BaseModel):
    command: str = Field(description="The bash command or script to execute")


class BashTool(BaseTool[BashParams]):
    """Execute bash commands with the workspace as working directory.

    A failing command is still a result: its output and exit code go back
    to the model. Only a command that fails without printing anything is
    reported as an error.
    """

    name: ClassVar[str] = "bash"
    description: ClassVar[str] = (
        "Execute bash commands or scripts.\n\n"
        "Use bash for:\n"
        "- File operations (ls, cat, mv, cp, rm, find, grep)\n"
        "- System info (df, du, ps, uname)\n"
        "- Running CLI tools (curl, jq, git, docker)\n"
        "- Quick one-liners and pipelines\n\n"
        "Use python instead for data processing, complex logic, or anything "
        "that needs libraries.\n\n"
        "Commands run in the workspace directory. The workspace persists between runs."
    )
    param_model: ClassVar[type[BaseModel]] = BashParams

    def __init__(self, workspace: Workspace, timeout: float = BASH_TIMEOUT) -> None:
        self._workspace = workspace
        self._timeout = timeout

    async def execute(self, params: BashParams) -> ToolResult:
        if not params.command.strip():
            raise ToolArgumentError("command is required")

        cwd = self._workspace.ensure()
        result = await run_process(
            ["bash", "-c", params.command],
            cwd=cwd,
            timeout=self._timeout,
            env={**os.environ, "WORKSPACE": cwd},
        )

        output = clean_terminal_output(result.combined(MAX_OUTPUT_BYTES))

        if result.timed_out:
            return ToolOk(
                output=f"{output}\n\nCommand timed out after {self._timeout:g}s"
            )

        if result.returncode != 0:
            if not output:
                return ToolError(
                    output=f"Command failed with exit code {result.returncode}"
                )
            return ToolOk(output=f"{output}\n\nExit code: {result.returncode}")

        if not output:
            return ToolOk(output="(no output)")

        return ToolOk(output=output.strip())
