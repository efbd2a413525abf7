"""OCI tool — container registry operations via skopeo, oras and podman."""

from __future__ import annotations

import json
import logging
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

from toolbot.errors import ToolArgumentError
from toolbot.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from toolbot.tool.process import run_process
from toolbot.tool.truncation import limit

logger = logging.getLogger(__name__)

OCI_TIMEOUT = 120.0
MAX_OCI_OUTPUT = 100_000

Operation = Literal[
    "inspect", "manifest", "list-tags", "pull", "copy", "annotate", "delete", "push"
]


class OCIParams(BaseModel):
    operation: Operation = Field(description="The operation to perform")
    image: str = Field(
        default="",
        description="Image reference (registry/repo:tag) for inspect, manifest, list-tags, pull, delete, annotate",
    )
    source: str = Field(default="", description="Source image reference for copy operation")
    dest: str = Field(
        default="", description="Destination image reference for copy/push operations"
    )
    annotations: str = Field(
        default="",
        description="JSON object of annotations to add (for annotate/push operations)",
    )
    file: str = Field(default="", description="Local file path for push operation")
    media_type: str = Field(
        default="application/octet-stream",
        description="Media type for push operation",
    )
    raw: bool = Field(default=False, description="For manifest: return raw JSON without formatting")
    all: bool = Field(
        default=False, description="For pull/copy: copy all architectures (multi-arch)"
    )


def normalize_ref(ref: str) -> str:
    """Qualify an image reference with a registry.

    ``alpine:3`` -> ``docker.io/library/alpine:3``,
    ``org/app`` -> ``docker.io/org/app``; transport prefixes are dropped.
    """
    for prefix in ("docker://", "oci://"):
        if ref.startswith(prefix):
            ref = ref[len(prefix) :]

    if "/" not in ref:
        return "docker.io/library/" + ref
    registry = ref.split("/", 1)[0]
    if "." not in registry and ":" not in registry and registry != "localhost":
        return "docker.io/" + ref
    return ref


def strip_tag(ref: str) -> str:
    """Drop a trailing ``:tag`` (but not a registry port)."""
    idx = ref.rfind(":")
    if idx > ref.rfind("/"):
        return ref[:idx]
    return ref


def annotation_flags(annotations: str) -> list[str]:
    """Turn a JSON object string into ``--annotation key=value`` flags."""
    if not annotations.strip():
        return []
    try:
        decoded = json.loads(annotations)
    except json.JSONDecodeError as e:
        raise ToolArgumentError(f"annotations must be a JSON object: {e}") from e
    if not isinstance(decoded, dict):
        raise ToolArgumentError("annotations must be a JSON object")

    flags: list[str] = []
    for key, value in decoded.items():
        flags.extend(["--annotation", f"{key}={value}"])
    return flags


class OCITool(BaseTool[OCIParams]):
    """Inspect and move images between OCI registries.

    skopeo handles inspect, manifest, list-tags, copy and delete; oras
    handles push and annotate; podman pulls into local storage.
    """

    name: ClassVar[str] = "oci"
    description: ClassVar[str] = (
        "Interact with OCI container registries and images.\n\n"
        "OPERATIONS:\n"
        "- inspect: Examine image metadata and configuration\n"
        "- manifest: Get raw image manifest (JSON)\n"
        "- list-tags: List all tags in a repository\n"
        "- pull: Pull an image to local storage\n"
        "- copy: Copy image between registries\n"
        "- annotate: Add or modify annotations on an image\n"
        "- delete: Delete an image tag from a registry\n"
        "- push: Push a local artifact to a registry\n\n"
        "EXAMPLES:\n"
        "- operation=inspect, image=docker.io/library/alpine:latest\n"
        "- operation=list-tags, image=docker.io/library/nginx\n"
        "- operation=copy, source=src:tag, dest=dst:tag\n"
        '- operation=annotate, image=myimage:v1, annotations={"key": "value"}\n\n'
        "All image references should be fully qualified (registry/repo:tag)."
    )
    param_model: ClassVar[type[BaseModel]] = OCIParams

    def __init__(self, timeout: float = OCI_TIMEOUT) -> None:
        self._timeout = timeout

    async def execute(self, params: OCIParams) -> ToolResult:
        logger.info("oci operation=%s", params.operation)
        op = params.operation

        if op == "copy":
            if not params.source or not params.dest:
                raise ToolArgumentError("source and dest are required for copy")
            argv = ["skopeo", "copy"]
            if params.all:
                argv.append("--all")
            if params.annotations:
                logger.info("Annotations are not applied by skopeo copy; use annotate afterwards")
            argv += [
                "docker://" + normalize_ref(params.source),
                "docker://" + normalize_ref(params.dest),
            ]
            return await self._run(argv)

        if op == "push":
            if not params.file or not params.dest:
                raise ToolArgumentError("file and dest are required for push")
            argv = [
                "oras",
                "push",
                normalize_ref(params.dest),
                f"{params.file}:{params.media_type or 'application/octet-stream'}",
            ]
            return await self._run(argv + annotation_flags(params.annotations))

        if not params.image:
            raise ToolArgumentError(f"image is required for {op}")
        ref = normalize_ref(params.image)

        if op == "inspect":
            return await self._run(["skopeo", "inspect", "docker://" + ref])
        if op == "manifest":
            return await self._manifest(ref, params.raw)
        if op == "list-tags":
            return await self._run(["skopeo", "list-tags", "docker://" + strip_tag(ref)])
        if op == "pull":
            argv = ["podman", "pull"]
            if params.all:
                argv.append("--all-tags")
            return await self._run(argv + [ref])
        if op == "delete":
            return await self._run(["skopeo", "delete", "docker://" + ref])

        # annotate
        flags = annotation_flags(params.annotations)
        if not flags:
            raise ToolArgumentError("annotations JSON is required for annotate")
        return await self._run(["oras", "manifest", "annotate", ref] + flags)

    async def _manifest(self, ref: str, raw: bool) -> ToolResult:
        result = await self._run(["skopeo", "inspect", "--raw", "docker://" + ref])
        if raw or result.is_error:
            return result

        # Pretty-print with jq when it is available
        try:
            formatted = await run_process(
                ["jq", "."], timeout=self._timeout, stdin=result.output
            )
        except FileNotFoundError:
            return result
        if formatted.ok and formatted.stdout:
            return ToolOk(output=limit(formatted.stdout, MAX_OCI_OUTPUT))
        return result

    async def _run(self, argv: list[str]) -> ToolResult:
        result = await run_process(argv, timeout=self._timeout)

        if result.timed_out:
            return ToolError(output=f"Command timed out after {self._timeout:g}s: {argv[0]}")

        stdout = limit(result.stdout, MAX_OCI_OUTPUT)
        if result.returncode != 0:
            if result.stderr:
                logger.info("stderr: %s", result.stderr.strip())
                return ToolError(
                    output=f"Error: {argv[0]} exited with code {result.returncode}\n{result.stderr}"
                )
            return ToolError(output=f"Error: {argv[0]} exited with code {result.returncode}")

        if stdout:
            return ToolOk(output=stdout)
        if result.stderr:
            return ToolOk(output=result.stderr)
        return ToolOk(output="Command completed successfully")
