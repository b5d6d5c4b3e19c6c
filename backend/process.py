"""
Process supervision for the external download tool.

Key public functions:
  launch(command, args, cwd)   start the tool with stdout/stderr piped
  kill(process)                idempotent kill, safe after exit
  wait(process)                block until exit, return the exit code
"""

import asyncio
import logging
from typing import Optional, Sequence

from errors import LaunchError

logger = logging.getLogger(__name__)

# yt-dlp can print very long lines (JSON dumps, format tables)
STREAM_LIMIT: int = 1024 * 1024


async def launch(
    command: Sequence[str],
    args: Sequence[str],
    cwd: Optional[str] = None,
) -> asyncio.subprocess.Process:
    """
    Start *command* + *args* with both output streams piped.

    Raises LaunchError if the executable is missing or cannot be spawned;
    nothing is left running in that case.
    """
    argv = [*command, *args]
    if not argv:
        raise LaunchError("empty command")
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            limit=STREAM_LIMIT,
        )
    except OSError as exc:
        raise LaunchError(f"could not start {argv[0]}: {exc}") from exc

    logger.debug("[Process] Started pid=%s: %s", process.pid, argv[0])
    return process


def kill(process: Optional[asyncio.subprocess.Process]) -> None:
    """Kill *process* if it is still running. Already-exited processes are ignored."""
    if process is None or process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        # Exited between the returncode check and the signal
        pass
    else:
        logger.debug("[Process] Sent kill to pid=%s", process.pid)


async def wait(process: asyncio.subprocess.Process) -> int:
    return await process.wait()
