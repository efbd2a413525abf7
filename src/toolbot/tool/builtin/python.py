"""Python tool — run scripts and develop code against tests in the workspace."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

from toolbot.errors import ToolArgumentError
from toolbot.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from toolbot.tool.process import log_preview, run_process
from toolbot.tool.truncation import limit
from toolbot.tool.workspace import Workspace

logger = logging.getLogger(__name__)

PYTHON_TIMEOUT = 60.0
MAX_OUTPUT_BYTES = 50_000
MAX_TEST_OUTPUT = 3000
LOG_PREFIX = "[python]"

Operation = Literal["run", "develop", "write", "read", "list", "test"]


class PythonParams(BaseModel):
    operation: Operation = Field(description="The operation to perform")
    code: str = Field(
        default="", description="Python code for 'run' (inline) or 'write' operations"
    )
    filename: str = Field(
        default="", description="Filename for write/read/run/test operations"
    )
    name: str = Field(
        default="",
        description="Base name for develop (creates name.py and test_name.py)",
    )
    implementation: str = Field(
        default="", description="Implementation code for develop operation"
    )
    tests: str = Field(default="", description="Test code for develop operation")
    fix_implementation: str = Field(
        default="",
        description="Fixed implementation code when retrying after test failure",
    )


class PythonTool(BaseTool[PythonParams]):
    """Python execution and test-driven development in the shared workspace."""

    name: ClassVar[str] = "python"
    description: ClassVar[str] = (
        "Python code execution and development.\n\n"
        "OPERATIONS:\n"
        "- run: Execute code (inline with 'code' param, or file with 'filename' param)\n"
        "- develop: Create implementation + tests, runs tests automatically. "
        "Returns errors if tests fail.\n"
        "- write: Save code to a file\n"
        "- read: Read a file\n"
        "- list: List workspace files\n"
        "- test: Run pytest manually\n\n"
        "FOR SIMPLE TASKS: use 'run' with inline code.\n\n"
        "FOR CODE WITH TESTS: use 'develop' with name, implementation and tests. "
        "If tests fail you get the errors back; call develop again with "
        "fix_implementation."
    )
    param_model: ClassVar[type[BaseModel]] = PythonParams

    def __init__(self, workspace: Workspace, timeout: float = PYTHON_TIMEOUT) -> None:
        self._workspace = workspace
        self._timeout = timeout

    async def execute(self, params: PythonParams) -> ToolResult:
        logger.info("%s operation=%s", LOG_PREFIX, params.operation)
        self._workspace.ensure()

        if params.operation == "run":
            return await self._run_code(params)
        if params.operation == "develop":
            return await self._develop(params)
        if params.operation == "test":
            return await self._run_tests(params)
        if params.operation == "write":
            return self._write_file(params)
        if params.operation == "read":
            return self._read_file(params)
        return self._list_files()

    async def _run_code(self, params: PythonParams) -> ToolResult:
        if params.filename:
            path = self._workspace.safe_path(params.filename)
            if not os.path.isfile(path):
                return ToolError(output=f"File not found: {params.filename}")
            logger.info("%s run file=%s", LOG_PREFIX, params.filename)
            return await self._execute(["python3", self._workspace.relative(path)])

        if not params.code:
            raise ToolArgumentError("either 'code' or 'filename' is required for run")

        fd, path = tempfile.mkstemp(prefix="run_", suffix=".py", dir=self._workspace.path)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(params.code)
            logger.info("%s run inline code (%d bytes)", LOG_PREFIX, len(params.code))
            log_preview(LOG_PREFIX, params.code, max_lines=5)
            return await self._execute(["python3", os.path.basename(path)])
        finally:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    async def _run_tests(self, params: PythonParams) -> ToolResult:
        argv = ["pytest", "-v", "--tb=short", "--no-header"]
        if params.filename:
            path = self._workspace.safe_path(params.filename)
            if not os.path.isfile(path):
                return ToolError(output=f"Test file not found: {params.filename}")
            argv.append(self._workspace.relative(path))
            logger.info("%s test file=%s", LOG_PREFIX, params.filename)
        else:
            logger.info("%s test all (discovering test_*.py)", LOG_PREFIX)
        return await self._execute(argv)

    async def _develop(self, params: PythonParams) -> ToolResult:
        if not params.name:
            raise ToolArgumentError("name is required for develop operation")

        base = os.path.basename(self._workspace.safe_path(params.name))
        if base.endswith(".py"):
            base = base[:-3]
        impl_file = f"{base}.py"
        test_file = f"test_{base}.py"
        impl_path = os.path.join(self._workspace.path, impl_file)
        test_path = os.path.join(self._workspace.path, test_file)

        implementation = params.fix_implementation or params.implementation
        if params.fix_implementation:
            logger.info("%s develop: applying fix to %s", LOG_PREFIX, impl_file)

        if implementation:
            _write(impl_path, implementation)
            logger.info(
                "%s develop: wrote %s (%d bytes)", LOG_PREFIX, impl_file, len(implementation)
            )
        if params.tests:
            _write(test_path, params.tests)
            logger.info(
                "%s develop: wrote %s (%d bytes)", LOG_PREFIX, test_file, len(params.tests)
            )

        if not os.path.isfile(impl_path):
            return ToolError(
                output=f"Implementation file {impl_file} not found - provide 'implementation' parameter"
            )
        if not os.path.isfile(test_path):
            return ToolError(
                output=f"Test file {test_file} not found - provide 'tests' parameter"
            )

        logger.info("%s develop: running tests %s", LOG_PREFIX, test_file)
        result = await run_process(
            ["pytest", "-v", "--tb=short", test_file],
            cwd=self._workspace.path,
            timeout=self._timeout,
        )
        output = result.stdout
        if result.stderr:
            output += "\nSTDERR:\n" + result.stderr
        if result.timed_out:
            output += f"\n\nTests timed out after {self._timeout:g}s"
        output = limit(output, MAX_TEST_OUTPUT, "test output")
        log_preview(LOG_PREFIX, output)

        if result.ok and "FAILED" not in output and "passed" in output:
            logger.info("%s develop: TESTS PASSED", LOG_PREFIX)
            return ToolOk(
                output=(
                    "ALL TESTS PASSED\n\n"
                    f"Files created:\n- {impl_file}\n- {test_file}\n\n"
                    f"Test output:\n{output}"
                )
            )

        logger.info("%s develop: TESTS FAILED", LOG_PREFIX)
        return ToolOk(
            output=(
                "TESTS FAILED\n\n"
                "Fix the implementation and call python again with:\n"
                '- operation: "develop"\n'
                f'- name: "{base}"\n'
                "- fix_implementation: <your fixed code>\n\n"
                f"Errors:\n{output}\n\n"
                "IMPORTANT: Only fix the implementation code. Keep the same tests.\n"
                "Make minimal changes to fix the specific errors shown above."
            )
        )

    async def _execute(self, argv: list[str]) -> ToolResult:
        result = await run_process(argv, cwd=self._workspace.path, timeout=self._timeout)
        output = result.combined(MAX_OUTPUT_BYTES)
        log_preview(LOG_PREFIX, output)

        if result.timed_out:
            return ToolOk(
                output=f"{output}\n\nExecution timed out after {self._timeout:g}s"
            )
        if result.returncode != 0:
            if not output:
                return ToolError(
                    output=f"Execution failed with exit code {result.returncode}"
                )
            return ToolOk(output=output)
        if not output:
            return ToolOk(output="(no output)")
        return ToolOk(output=output)

    def _write_file(self, params: PythonParams) -> ToolResult:
        if not params.code:
            raise ToolArgumentError("code is required for write operation")
        if not params.filename:
            raise ToolArgumentError("filename is required for write operation")

        logger.info("%s write file=%s (%d bytes)", LOG_PREFIX, params.filename, len(params.code))
        log_preview(LOG_PREFIX, params.code, max_lines=5)

        path = self._workspace.safe_path(params.filename)
        _write(path, params.code)
        return ToolOk(output=f"Saved to {params.filename} ({len(params.code)} bytes)")

    def _read_file(self, params: PythonParams) -> ToolResult:
        if not params.filename:
            raise ToolArgumentError("filename is required for read operation")

        path = self._workspace.safe_path(params.filename)
        if not os.path.isfile(path):
            return ToolError(output=f"File not found: {params.filename}")

        with open(path, "r", errors="replace") as f:
            content = f.read()
        logger.info("%s read OK (%d bytes)", LOG_PREFIX, len(content))
        return ToolOk(output=limit(content, MAX_OUTPUT_BYTES, "file"))

    def _list_files(self) -> ToolResult:
        files = []
        for root, dirs, names in os.walk(self._workspace.path):
            dirs.sort()
            for fname in sorted(names):
                full = os.path.join(root, fname)
                files.append(
                    f"  {self._workspace.relative(full)} ({os.path.getsize(full)} bytes)"
                )

        logger.info("%s list found %d files", LOG_PREFIX, len(files))
        if not files:
            return ToolOk(output="Workspace is empty.")
        return ToolOk(output="Files in workspace:\n" + "\n".join(files))


def _write(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
