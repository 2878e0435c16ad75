"""Run one ``cv`` command line through the shell and capture its output."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

from civitools.crm.errors import ProcessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str


async def run_command(command: str, timeout: float | None = None) -> CommandResult:
    """Run ``command`` through the shell and return its decoded output.

    Raises ProcessError when the process cannot be spawned, exceeds
    ``timeout`` seconds (it is killed first), or exits non-zero. Stderr on a
    zero exit is only logged: ``cv`` prints notices there on success.
    """
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise ProcessError(f"Failed to start command: {e}", command=command) from e

    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_group(proc)
        await proc.wait()
        raise ProcessError(
            f"Command timed out after {timeout}s",
            command=command,
            stderr=f"timed out after {timeout}s",
        ) from None

    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")

    if proc.returncode != 0:
        raise ProcessError(
            f"Command exited with status {proc.returncode}: {stderr.strip()[:500]}",
            command=command,
            exit_status=proc.returncode,
            stderr=stderr,
        )

    if stderr.strip():
        logger.warning("cv stderr: %s", stderr.strip()[:2000])

    return CommandResult(stdout=stdout, stderr=stderr)


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started (it leads its own session)."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
