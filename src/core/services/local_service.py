"""Foreground local run of a service (`mlx serve run`)."""

from __future__ import annotations

import asyncio
import logging

from core.context import AppContext
from core.errors import ConfigError
from core.project import ServiceProject
from core.services.schema_normalizer import load_service_schema

log = logging.getLogger(__name__)


async def run_local_service(ctx: AppContext, project: ServiceProject) -> int | None:
    """Start the service and wait for it; Ctrl+C terminates the child too."""

    project.require_files()
    # Fail early on a broken schema instead of inside the service.
    load_service_schema(project.schema_path)

    command = ctx.settings.service_command
    try:
        process = await ctx.launcher.start(command, cwd=project.root)
    except OSError as exc:
        raise ConfigError(f"Could not start the local service with `{' '.join(command)}`: {exc}") from exc

    try:
        code = await process.wait(None)
    except asyncio.CancelledError:
        await process.terminate()
        raise
    log.info("Local service exited with code %s", code)
    return code
