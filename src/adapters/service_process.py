"""Local service process management.

The user's service runs as a child process next to the CLI. Its stdout/stderr
are pumped line by line into the log while it runs, and the handle is owned by
the caller, which decides how long to wait and when to terminate it.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Sequence

from core.interfaces.process import ServiceLauncher, ServiceProcess

log = logging.getLogger(__name__)

_KILL_GRACE_SECONDS = 5.0


class LocalServiceProcess(ServiceProcess):
    def __init__(self, proc: asyncio.subprocess.Process, *, label: str) -> None:
        self._proc = proc
        self._label = label
        self.pid = proc.pid
        self._pump = asyncio.create_task(self._pump_output())

    async def _pump_output(self) -> None:
        stream = self._proc.stdout
        if stream is None:
            return
        async for raw in stream:
            log.info("[%s] %s", self._label, raw.decode("utf-8", errors="replace").rstrip())

    async def _finish_pump(self) -> None:
        # A grandchild may keep the pipe open after the service exits.
        try:
            await asyncio.wait_for(self._pump, timeout=_KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            log.debug("Output of %s still open; detaching", self._label)

    async def wait(self, timeout: float | None) -> int | None:
        try:
            code = await asyncio.wait_for(self._proc.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        await self._finish_pump()
        return code

    async def terminate(self) -> int | None:
        if self._proc.returncode is None:
            log.warning("Terminating %s (pid %s)", self._label, self.pid)
            self._proc.terminate()
            try:
                await asyncio.wait_for(self._proc.wait(), timeout=_KILL_GRACE_SECONDS)
            except asyncio.TimeoutError:
                log.warning("Killing %s (pid %s)", self._label, self.pid)
                self._proc.kill()
                await self._proc.wait()
        await self._finish_pump()
        return self._proc.returncode


class SubprocessLauncher(ServiceLauncher):
    """Starts the service command with asyncio's subprocess support."""

    async def start(self, command: Sequence[str], *, cwd: Path) -> LocalServiceProcess:
        log.info("Starting local service: %s", " ".join(command))
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        return LocalServiceProcess(proc, label=Path(command[0]).name)
