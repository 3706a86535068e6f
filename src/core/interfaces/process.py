"""Contract for the locally spawned service process."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class ServiceProcess(Protocol):
    """Handle on a running local service, owned by whoever started it."""

    pid: int | None

    async def wait(self, timeout: float | None) -> int | None:
        """Return the exit code, or None if the process outlived `timeout` (None waits forever)."""

        ...

    async def terminate(self) -> int | None:
        """Stop the process (terminate, then kill) and return its exit code."""

        ...


@runtime_checkable
class ServiceLauncher(Protocol):
    async def start(self, command: Sequence[str], *, cwd: Path) -> ServiceProcess: ...
