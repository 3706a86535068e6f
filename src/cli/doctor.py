"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from adapters.container_engine import build_engine
from adapters.http_client import build_async_client
from adapters.message_queue import build_publisher
from core.config import AppSettings, write_user_env_vars
from core.errors import ConfigError, NetworkError
from core.interfaces.engine import EngineCommandError
from core.project import ServiceProject

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings, timeout_seconds=settings.probe_timeout_seconds) as client:
            response = await client.get(url)
        return response.is_success, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


async def _check_engine(settings: AppSettings) -> tuple[bool, str]:
    try:
        return True, await build_engine(settings).version()
    except (EngineCommandError, OSError) as exc:
        return False, str(exc)


async def _check_redis(settings: AppSettings) -> tuple[bool, str]:
    try:
        publisher = build_publisher(settings)
    except ConfigError as exc:
        return False, str(exc)
    try:
        await publisher.ping()
        return True, settings.redis_url
    except NetworkError as exc:
        return False, str(exc)
    finally:
        await publisher.aclose()


async def _run_checks(settings: AppSettings) -> list[tuple[str, bool, str]]:
    checks: list[tuple[str, bool, str]] = []
    ok_engine, detail_engine = await _check_engine(settings)
    checks.append((f"Engine ({settings.container_engine.value})", ok_engine, detail_engine))
    for label, url in (("Local control plane", settings.local_server_url), ("Remote control plane", settings.remote_server_url)):
        ok, detail = await _check_http(url, settings)
        checks.append((f"{label}", ok, f"{url} -> {detail}"))
    ok_redis, detail_redis = await _check_redis(settings)
    checks.append(("Redis (local tests)", ok_redis, detail_redis))
    return checks


@app.command()
def run(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Service directory to inspect."),
) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="MLX Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    if settings.registry_token is not None and settings.registry_token.get_secret_value():
        table.add_row("Registry token", "OK", f"{settings.registry_username}@{settings.registry_host}")
    else:
        table.add_row("Registry token", "MISSING", "Required by `serve deploy` -> run `mlx doctor setup-registry`")
    table.add_row("Image registry", "OK", settings.image_registry)

    runner = settings.service_command[0]
    runner_path = shutil.which(runner)
    table.add_row(f"Service runner ({runner})", "OK" if runner_path else "FAIL", runner_path or "not on PATH")

    # Connectivity (best-effort)
    for label, ok, detail in asyncio.run(_run_checks(settings)):
        table.add_row(label, "OK" if ok else "FAIL", detail)

    # Service project
    project = ServiceProject.at(path, settings)
    for label, file_path in (("Schema", project.schema_path), ("Manifest", project.manifest_path)):
        table.add_row(f"{label} file", "OK" if file_path.is_file() else "MISSING", str(file_path))
    containerfile = project.containerfile()
    table.add_row("Dockerfile", "OK" if containerfile else "MISSING", str(containerfile or project.root))

    _console.print(table)


@app.command(name="setup-registry")
def setup_registry() -> None:
    """Interactive registry setup (stores config in the user config .env)."""

    defaults = AppSettings()
    registry = typer.prompt("Image repository (<host>/<path>)", default=defaults.image_registry).strip()
    username = typer.prompt("Registry username", default=defaults.registry_username).strip()
    token = typer.prompt("Registry token", hide_input=True, confirmation_prompt=False).strip()

    if not registry or not username or not token:
        raise typer.BadParameter("repository, username and token are required")

    env_path = write_user_env_vars(
        {
            "MLX_IMAGE_REGISTRY": registry,
            "MLX_REGISTRY_USERNAME": username,
            "MLX_REGISTRY_TOKEN": token,
        }
    )

    _console.print(f"[green]Saved registry config to:[/green] {env_path}")
