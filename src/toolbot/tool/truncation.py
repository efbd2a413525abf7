"""Output limits — everything a tool hands the model is bounded here.

Two cuts are applied. Each stream or file a tool reads is cut to a head of
``max_chars`` by :func:`limit`, and the finished tool output is cut to its
tail by :func:`truncate_output` in ``BaseTool.__call__``. Both say in the
text what was dropped and what the limit was, so the model knows it is
looking at part of the output.
"""

from __future__ import annotations

import re

MAX_LINES = 2000
MAX_BYTES = 50 * 1024

# ANSI CSI/OSC sequences first, then stray control characters
_TERMINAL_NOISE_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufff9-\ufffb]"
)


def limit(text: str, max_chars: int, what: str = "output") -> str:
    """Keep the first ``max_chars`` characters of ``text``.

    A cut is marked on its own line, naming ``what`` was cut and by how much.
    """
    if len(text) <= max_chars:
        return text
    return (
        f"{text[:max_chars]}\n"
        f"... ({what} truncated: first {max_chars} of {len(text)} characters shown)"
    )


def truncate_output(
    text: str,
    max_lines: int = MAX_LINES,
    max_bytes: int = MAX_BYTES,
) -> str:
    """Bound a tool result to ``max_lines`` lines and ``max_bytes`` bytes.

    The end of the output is kept, since that is where errors and test
    summaries land. A one-line notice goes in front.
    """
    if not text:
        return text

    lines = text.split("\n")
    total_bytes = len(text.encode("utf-8", errors="replace"))
    if len(lines) <= max_lines and total_bytes <= max_bytes:
        return text

    kept = "\n".join(lines[-max_lines:])
    data = kept.encode("utf-8", errors="replace")
    if len(data) > max_bytes:
        # drop the partial character at the cut
        kept = data[-max_bytes:].decode("utf-8", errors="ignore")

    shown = kept.count("\n") + 1
    notice = (
        f"[Output truncated: last {shown} of {len(lines)} lines shown, "
        f"limit {max_lines} lines / {max_bytes} bytes]"
    )
    return f"{notice}\n{kept}"


def clean_terminal_output(text: str) -> str:
    """Drop colour codes and control bytes from command output.

    Tabs, newlines and carriage returns stay.
    """
    return _TERMINAL_NOISE_RE.sub("", text)
