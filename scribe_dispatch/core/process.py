"""
Cancellable child-process helpers.

Engines and installers are run in their own process group so that killing them
also takes down anything they spawned (``uv run`` starts the real interpreter as
a grandchild). Task cancellation, the job's cancel event and deadlines all end
in a kill.
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from scribe_dispatch.core.errors import ExecutionCancelled, ExecutionTimeout

logger = logging.getLogger(__name__)

_NEW_SESSION = os.name == "posix"


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_command(args: Sequence[str]) -> str:
    return " ".join(str(arg) for arg in args)


async def terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the process (and its group on POSIX) and reap it."""
    if process.returncode is not None:
        return
    try:
        if _NEW_SESSION:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


async def _wait(
    process: asyncio.subprocess.Process,
    waiter,
    args: Sequence[str],
    timeout: float | None,
    cancel_event: asyncio.Event | None = None,
):
    """
    Wait for ``waiter`` while watching the deadline and the job's cancel event.

    Task cancellation kills the child and re-raises CancelledError, so enclosing
    ``asyncio.timeout()`` / ``wait_for`` scopes still see their own expiry.
    """
    work = asyncio.ensure_future(waiter)
    watched = {work}
    stop = None
    if cancel_event is not None:
        stop = asyncio.ensure_future(cancel_event.wait())
        watched.add(stop)
    try:
        done, _ = await asyncio.wait(watched, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        logger.warning(f"🛑 Task cancelled, killing pid {process.pid}: {format_command(args)}")
        await terminate(process)
        raise
    finally:
        for fut in watched:
            if not fut.done():
                fut.cancel()

    if work in done:
        return work.result()

    await terminate(process)
    if stop is not None and stop in done:
        logger.warning(f"🛑 Job cancelled, killed pid {process.pid}: {format_command(args)}")
        raise ExecutionCancelled(f"Command was cancelled: {format_command(args)}")
    logger.warning(f"⏱️ Command timed out after {timeout}s, killed pid {process.pid}: {format_command(args)}")
    raise ExecutionTimeout(f"Command exceeded its {timeout}s deadline: {format_command(args)}")


async def run_command(
    args: Sequence[str],
    cwd: Path | None = None,
    timeout: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> CommandResult:
    """
    Run a command to completion and capture its combined stdout/stderr.

    Raises:
        OSError: the executable could not be started.
        ExecutionTimeout / ExecutionCancelled: the process was killed.
        asyncio.CancelledError: the task was cancelled; the process was killed first.
    """
    args = tuple(str(arg) for arg in args)
    logger.debug(f"Running: {format_command(args)} (cwd={cwd})")
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        start_new_session=_NEW_SESSION,
    )
    stdout, _ = await _wait(process, process.communicate(), args, timeout, cancel_event)
    output = (stdout or b"").decode("utf-8", errors="replace")
    return CommandResult(args=args, returncode=process.returncode, output=output)


async def run_logged(
    args: Sequence[str],
    log_path: Path,
    cwd: Path | None = None,
    timeout: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> int:
    """
    Run a command with stdout and stderr redirected into ``log_path``.

    The log file is truncated first and is never removed here.
    Returns the exit code.
    """
    args = tuple(str(arg) for arg in args)
    logger.debug(f"Running: {format_command(args)} (cwd={cwd}, log={log_path})")
    with open(log_path, "wb") as log_file:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=log_file,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=_NEW_SESSION,
        )
        return await _wait(process, process.wait(), args, timeout, cancel_event)


def read_tail(path: Path, limit: int = 8192) -> str:
    """Return the last ``limit`` bytes of a text file, or '' if unreadable."""
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            f.seek(max(0, size - limit))
            return f.read().decode("utf-8", errors="replace")
    except OSError:
        return ""
