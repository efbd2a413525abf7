"""Subprocess execution for tools — bounded in time, killable, output capped."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass

from toolbot.tool.truncation import limit

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


@dataclass
class ProcessOutput:
    """What a finished (or killed) subprocess produced."""

    stdout: str = ""
    stderr: str = ""
    returncode: int | None = None
    timed_out: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    def combined(self, max_chars: int) -> str:
        """stdout, then stderr under a ``STDERR:`` header, each capped."""
        parts = []
        if self.stdout:
            parts.append(limit(self.stdout, max_chars, "stdout"))
        if self.stderr:
            parts.append("STDERR:\n" + limit(self.stderr, max_chars, "stderr"))
        return "\n".join(parts)


async def run_process(
    argv: list[str],
    cwd: str | None = None,
    timeout: float = 60.0,
    env: dict[str, str] | None = None,
    stdin: str | None = None,
) -> ProcessOutput:
    """Run ``argv`` and collect its output.

    On timeout the whole process group is killed and whatever output was
    read so far is returned with ``timed_out`` set. On cancellation the
    process group is killed, the process is reaped and ``CancelledError``
    propagates.

    Raises:
        FileNotFoundError: The executable does not exist.
    """
    logger.info("exec: %s", " ".join(argv))
    start = time.monotonic()

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=env,
        preexec_fn=os.setpgrp,  # New process group
    )

    out = bytearray()
    err = bytearray()
    timed_out = False

    async def _feed() -> None:
        if stdin is None or process.stdin is None:
            return
        try:
            process.stdin.write(stdin.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            pass
        finally:
            process.stdin.close()

    pending = asyncio.gather(
        _feed(),
        _drain(process.stdout, out),
        _drain(process.stderr, err),
        process.wait(),
    )
    try:
        await asyncio.wait_for(pending, timeout=timeout)
    except asyncio.TimeoutError:
        timed_out = True
        _kill_group(process)
        await process.wait()
    except asyncio.CancelledError:
        _kill_group(process)
        # reap it before propagating, or it lingers as a zombie
        await asyncio.shield(process.wait())
        raise

    duration = time.monotonic() - start
    result = ProcessOutput(
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        returncode=process.returncode,
        timed_out=timed_out,
        duration=duration,
    )

    if timed_out:
        logger.warning("TIMEOUT after %.0fs: %s", timeout, argv[0])
    elif result.returncode != 0:
        logger.info("FAILED (%.2fs) exit=%s: %s", duration, result.returncode, argv[0])
    else:
        logger.info(
            "OK (%.2fs) stdout=%d stderr=%d", duration, len(out), len(err)
        )
    return result


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    """Read a stream to EOF; whatever arrived stays in ``sink`` if cancelled."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        sink.extend(chunk)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None or not process.pid:
        return
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except ProcessLookupError:
        pass


def log_preview(prefix: str, text: str, max_lines: int = 15) -> None:
    """Log the first lines of code or output at debug level."""
    text = text.strip()
    if not text:
        logger.debug("%s (no output)", prefix)
        return
    lines = text.split("\n")
    for line in lines[:max_lines]:
        if len(line) > 120:
            line = line[:117] + "..."
        logger.debug("%s   %s", prefix, line)
    if len(lines) > max_lines:
        logger.debug("%s   ... (%d more lines)", prefix, len(lines) - max_lines)
