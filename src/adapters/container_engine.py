"""Container engine adapter (podman / docker CLI).

Why shell out instead of an SDK:
- Both engines share the same CLI flags for build/tag/login/push, so one
  adapter covers either binary.
- Registry credentials go through `--password-stdin`; they never show up in
  process listings or logs.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from core.config import AppSettings, ContainerEngineKind
from core.interfaces.engine import ContainerEngine, EngineCommandError

log = logging.getLogger(__name__)

_TOLERATED_MACHINE_ERRORS = ("already exists", "already running")


class CliContainerEngine(ContainerEngine):
    """Runs engine commands as child processes and streams their output to the log."""

    def __init__(self, executable: str = "podman") -> None:
        self.name = executable
        self._executable = executable

    async def _run(self, *args: str, stdin: bytes | None = None) -> str:
        cmd = [self._executable, *args]
        log.debug("Running %s", " ".join(cmd))
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        out, _ = await proc.communicate(input=stdin)
        text = out.decode("utf-8", errors="replace") if out else ""
        for line in text.splitlines():
            log.debug("[%s] %s", self._executable, line)
        if proc.returncode != 0:
            raise EngineCommandError(cmd, proc.returncode or -1, text)
        return text

    async def version(self) -> str:
        return (await self._run("--version")).strip()

    async def ensure_available(self) -> None:
        log.info("%s is installed: %s", self.name, await self.version())
        if self._executable == ContainerEngineKind.PODMAN.value and sys.platform == "darwin":
            await self._ensure_podman_machine()

    async def _ensure_podman_machine(self) -> None:
        # On macOS podman needs a VM; init/start are idempotent enough to retry.
        for action in ("init", "start"):
            try:
                await self._run("machine", action)
            except EngineCommandError as exc:
                if any(token in exc.output for token in _TOLERATED_MACHINE_ERRORS):
                    log.info("Podman machine %s skipped: %s", action, exc.output.strip())
                    continue
                raise

    async def build(self, *, tag: str, platform: str, context_dir: Path) -> None:
        await self._run("build", "--platform", platform, "-t", tag, str(context_dir))

    async def tag(self, source: str, target: str) -> None:
        await self._run("tag", source, target)

    async def login(self, *, registry: str, username: str, password: bytes) -> None:
        await self._run("login", registry, "--username", username, "--password-stdin", stdin=password)

    async def push(self, image_uri: str) -> None:
        log.info("Pushing image to registry... (this may take a few minutes)")
        await self._run("push", image_uri)

    async def remove(self, image: str) -> None:
        await self._run("rmi", image)


def build_engine(settings: AppSettings | None = None) -> CliContainerEngine:
    settings = settings or AppSettings()
    return CliContainerEngine(settings.container_engine.value)
