"""Async subprocess runner streaming output lines to callbacks.

Cancellation is cooperative: setting ``cancel_event`` (typically from inside an
output callback) or exceeding ``timeout`` kills the child process. Cancelling the
awaiting task kills it as well.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]


class ProcessCancelledError(Exception):
    """Raised when a running process was stopped through its cancel event."""


def executable_command(executable: Union[str, Path]) -> List[str]:
    """Return the argv prefix used to launch ``executable``.

    .NET console executables are launched through ``mono`` on non-Windows hosts
    when it is available.
    """
    path = str(executable)
    if sys.platform != "win32" and path.lower().endswith(".exe"):
        mono = shutil.which("mono")
        if mono:
            return [mono, path]
    return [path]


async def _pump(stream: Optional[asyncio.StreamReader], callback: Optional[LineCallback]) -> None:
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if callback is not None and line.strip():
            callback(line)


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


async def run_process(
    executable: Union[str, Path],
    arguments: Sequence[str],
    *,
    on_stdout: Optional[LineCallback] = None,
    on_stderr: Optional[LineCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timeout: Optional[float] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> int:
    """Run ``executable`` with ``arguments`` and return its exit code.

    Raises:
        ProcessCancelledError: ``cancel_event`` was set before the process exited.
        asyncio.TimeoutError: ``timeout`` elapsed before the process exited.
        OSError: the process could not be started.
    """
    command = executable_command(executable) + [str(argument) for argument in arguments]
    logger.debug("Starting process %s", " ".join(command))
    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(os.environ),
    )

    async def _complete() -> int:
        await asyncio.gather(_pump(process.stdout, on_stdout), _pump(process.stderr, on_stderr))
        return await process.wait()

    completion = asyncio.ensure_future(_complete())
    waiters = {completion}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if completion in done:
            return completion.result()
        if cancel_waiter is not None and cancel_waiter in done:
            raise ProcessCancelledError(f"Process {executable} was cancelled")
        raise asyncio.TimeoutError(f"Process {executable} did not exit within {timeout} seconds")
    finally:
        if process.returncode is None:
            _kill(process)
        pending = [waiter for waiter in waiters if not waiter.done()]
        for waiter in pending:
            waiter.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if process.returncode is None:
            await process.wait()
