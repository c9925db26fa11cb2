"""Agent subprocess lifecycle: spawn and graceful shutdown."""

from __future__ import annotations

import asyncio
import os
import platform
import shlex
import signal
import sys
from collections.abc import Mapping

from acpsession.errors import TransportError
from acpsession.logging import get_logger
from acpsession.transport.stdio import STREAM_LIMIT

log = get_logger("transport")

# Windows-specific subprocess creation flags
_WINDOWS = platform.system() == "Windows"
_CREATE_NEW_PROCESS_GROUP = 0x00000200 if _WINDOWS else 0


async def spawn_agent(
    command: str,
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> asyncio.subprocess.Process:
    """Start the agent with piped stdin/stdout; stderr is inherited.

    Raises:
        TransportError: If the command is empty or cannot be started.
    """
    args = shlex.split(command, posix=not _WINDOWS)
    if not args:
        raise TransportError("Empty agent command")

    process_env = {**os.environ, **env} if env else None
    log.info("Spawning agent: %s", command)
    try:
        # On Windows, create in new process group to enable Ctrl+Break signaling
        process = await asyncio.create_subprocess_exec(
            args[0],
            *args[1:],
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=sys.stderr,
            cwd=cwd,
            env=process_env,
            limit=STREAM_LIMIT,
            creationflags=_CREATE_NEW_PROCESS_GROUP,  # type: ignore[arg-type]
        )
    except OSError as e:
        raise TransportError(f"Failed to spawn agent {args[0]!r}: {e}") from e
    log.debug("Agent pid %s", process.pid)
    return process


def _send_interrupt(process: asyncio.subprocess.Process) -> None:
    """Send interrupt signal to process (Ctrl-Break on Windows, SIGINT on Unix)."""
    sig = signal.CTRL_BREAK_EVENT if _WINDOWS else signal.SIGINT  # type: ignore[attr-defined]
    try:
        os.kill(process.pid, sig)
    except OSError:
        process.terminate()


async def graceful_shutdown(
    process: asyncio.subprocess.Process,
    interrupt_timeout: float = 2.0,
    terminate_timeout: float = 3.0,
) -> None:
    """Shut the agent down: interrupt -> terminate -> kill."""
    if process.returncode is not None:
        return

    _send_interrupt(process)
    try:
        await asyncio.wait_for(process.wait(), timeout=interrupt_timeout)
        return
    except asyncio.TimeoutError:
        pass

    log.debug("Agent ignored interrupt, terminating")
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=terminate_timeout)
        return
    except asyncio.TimeoutError:
        pass

    log.warning("Agent did not exit, killing pid %s", process.pid)
    process.kill()
    await process.wait()
