"""Container engine contract.

Why Protocol:
- podman and docker share one CLI surface; either can back the image pipeline.
- Tests substitute an in-memory engine without spawning processes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


class EngineCommandError(Exception):
    """An engine command exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, output: str = "") -> None:
        self.args_list = args
        self.returncode = returncode
        self.output = output
        tail = output.strip().splitlines()[-5:]
        detail = " | ".join(tail) if tail else "no output"
        super().__init__(f"`{' '.join(args)}` exited with {returncode}: {detail}")


@runtime_checkable
class ContainerEngine(Protocol):
    """Minimal engine surface used by the image pipeline.

    Design rules:
    - Every method is async: each one waits on a child process.
    - Failures raise `EngineCommandError` (or `OSError` if the binary is missing).
    - `login` receives the secret as bytes for stdin; it must never reach argv.
    """

    name: str

    async def ensure_available(self) -> None: ...

    async def build(self, *, tag: str, platform: str, context_dir: Path) -> None: ...

    async def tag(self, source: str, target: str) -> None: ...

    async def login(self, *, registry: str, username: str, password: bytes) -> None: ...

    async def push(self, image_uri: str) -> None: ...

    async def remove(self, image: str) -> None: ...
