"""Workspace — the directory the python and bash tools share."""

from __future__ import annotations

import os

DEFAULT_WORKSPACE = "workspace"


class Workspace:
    """A directory on disk that tool file operations are confined to.

    Concurrent conversations share it; there is no per-conversation
    isolation or locking.
    """

    def __init__(self, path: str | None = None) -> None:
        self.path = os.path.abspath(path or DEFAULT_WORKSPACE)

    def ensure(self) -> str:
        """Create the directory if needed and return its absolute path."""
        os.makedirs(self.path, exist_ok=True)
        return self.path

    def safe_path(self, filename: str) -> str:
        """Resolve ``filename`` inside the workspace.

        Leading slashes and ``..`` components are dropped so the result can
        never point outside.
        """
        parts = [
            p
            for p in os.path.normpath(filename.replace("\\", "/")).split(os.sep)
            if p not in ("", ".", "..")
        ]
        return os.path.join(self.path, *parts)

    def relative(self, path: str) -> str:
        return os.path.relpath(path, self.path)
