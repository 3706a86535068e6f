"""Typer CLI entrypoint.

Commands are thin: they build an `AppContext`, call one service coroutine with
`asyncio.run`, and render the result with Rich. Typed `MlxError`s are the only
exceptions turned into a red message and exit status 1.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import typer
from rich.console import Console

from cli import doctor
from cli.logging_setup import boot_logging
from cli.ui_components import (
    build_deployment_panel,
    build_job_log_panel,
    build_jobs_table,
    build_services_table,
    build_test_report_table,
    print_banner,
)
from core.config import AppSettings
from core.context import AppContext
from core.errors import MlxError
from core.project import ServiceProject
from core.services import service_admin
from core.services.deployment import deploy_service
from core.services.local_service import run_local_service
from core.services.orchestrator import TestOrchestrator

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Package, deploy and test MLX inference services.")
serve_app = typer.Typer(no_args_is_help=True, help="Run, deploy and manage services.")
app.add_typer(serve_app, name="serve")
app.add_typer(doctor.app, name="doctor")

_console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs (engine output, probes)."),
) -> None:
    settings = AppSettings()
    boot_logging("DEBUG" if verbose else settings.log_level)


def _execute(coro: Coroutine[Any, Any, T]) -> T:
    """Run one service coroutine; typed failures become exit status 1."""

    try:
        return asyncio.run(coro)
    except MlxError as exc:
        _console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key.strip()] = value
    return env


@serve_app.command("run")
def serve_run(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Service directory."),
) -> None:
    """Run the service locally in the foreground."""

    ctx = AppContext.from_settings()
    project = ServiceProject.at(path, ctx.settings)
    exit_code = _execute(run_local_service(ctx, project))
    if exit_code:
        raise typer.Exit(code=exit_code)


@serve_app.command("deploy")
def serve_deploy(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Service directory."),
    replicas: Optional[int] = typer.Option(None, "--replicas", min=1, help="Override manifest replicas."),
    env: list[str] = typer.Option([], "--env", "-e", help="Environment variable for the service (KEY=VALUE)."),
    save_request: Optional[Path] = typer.Option(
        None, "--save-request", help="Also write the deployment request JSON to this path."
    ),
    no_banner: bool = typer.Option(False, "--no-banner", help="Skip the banner."),
    skip_schema_build: bool = typer.Option(
        False, "--skip-schema-build", help="Deploy the existing schema file without regenerating it."
    ),
) -> None:
    """Build, push and submit the service to the control plane."""

    env_vars = _parse_env(env)
    if not no_banner:
        print_banner(_console)

    ctx = AppContext.from_settings()
    project = ServiceProject.at(path, ctx.settings)
    with _console.status("[bold cyan]Building and deploying...[/bold cyan]"):
        result = _execute(
            deploy_service(
                ctx,
                project,
                replicas=replicas,
                env_vars=env_vars,
                request_output=save_request,
                build_schema=not skip_schema_build,
            )
        )
    _console.print(build_deployment_panel(result))
    if save_request is not None:
        _console.print(f"[green]Deployment request saved:[/green] {save_request}")


@serve_app.command("test")
def serve_test(
    name: Optional[str] = typer.Argument(None, help="Run only this test."),
    remote: bool = typer.Option(False, "--remote", help="Invoke the deployed service instead of a local run."),
    path: Path = typer.Option(Path("."), "--path", "-p", help="Service directory."),
) -> None:
    """Validate and dispatch the manifest's tests."""

    ctx = AppContext.from_settings()
    project = ServiceProject.at(path, ctx.settings)
    report = _execute(TestOrchestrator(ctx, project).run(name, remote=remote))
    _console.print(build_test_report_table(report))
    if report.process_timed_out:
        _console.print("[yellow]Local service did not stop in time and was terminated.[/yellow]")
    if report.failed:
        raise typer.Exit(code=1)


@serve_app.command("ls")
def serve_ls(
    name: Optional[str] = typer.Option(None, "--name", help="Only show this service."),
) -> None:
    """List deployed services."""

    ctx = AppContext.from_settings()
    services = _execute(service_admin.list_services(ctx, name))
    if not services:
        _console.print("[yellow]No services found.[/yellow]")
        return
    _console.print(build_services_table(services))


@serve_app.command("rm")
def serve_rm(
    name: str = typer.Argument(..., help="Name of the service."),
    version: Optional[int] = typer.Argument(None, help="Version to remove."),
    all_versions: bool = typer.Option(False, "--all", help="Remove every version of the service."),
) -> None:
    """Remove one version of a service, or all of them with --all."""

    if version is None and not all_versions:
        _console.print("[red]Error:[/red] specify a version to remove or use --all to remove every version.")
        raise typer.Exit(code=1)

    ctx = AppContext.from_settings()
    _execute(service_admin.delete_service(ctx, name, version))
    target = f"{name} version {version}" if version is not None else f"all versions of {name}"
    _console.print(f"[green]Removed[/green] {target}")


@serve_app.command("jobs")
def serve_jobs(name: str = typer.Argument(..., help="Name of the service.")) -> None:
    """List the jobs of a service."""

    ctx = AppContext.from_settings()
    jobs = _execute(service_admin.list_jobs(ctx, name))
    if not jobs:
        _console.print("[yellow]No jobs found.[/yellow]")
        return
    _console.print(build_jobs_table(jobs))


@serve_app.command("logs")
def serve_logs(
    name: str = typer.Argument(..., help="Name of the service."),
    job_id: str = typer.Argument(..., help="Job id (see `serve jobs`)."),
    show_input: bool = typer.Option(True, "--input/--no-input", help="Include the validated input."),
    show_response: bool = typer.Option(True, "--response/--no-response", help="Include the response."),
    show_logs: bool = typer.Option(True, "--logs/--no-logs", help="Include the job logs."),
    show_timer: bool = typer.Option(True, "--timer/--no-timer", help="Include start/end times."),
) -> None:
    """Show the log of one job."""

    ctx = AppContext.from_settings()
    data = _execute(
        service_admin.job_logs(
            ctx,
            name,
            job_id,
            include_input=show_input,
            include_response=show_response,
            include_logs=show_logs,
            include_timer=show_timer,
        )
    )
    _console.print(build_job_log_panel(data))


@serve_app.command("scale")
def serve_scale(
    name: str = typer.Argument(..., help="Name of the service."),
    version: str = typer.Argument(..., help="Version to scale."),
    replicas: Optional[int] = typer.Option(None, "--replicas", min=0),
    cpu_limit: Optional[str] = typer.Option(None, "--cpu-limit"),
    gpu_limit: Optional[str] = typer.Option(None, "--gpu-limit"),
    memory_limit: Optional[str] = typer.Option(None, "--memory-limit"),
    concurrent_jobs: Optional[int] = typer.Option(None, "--concurrent-jobs", min=1),
) -> None:
    """Change the resources of a deployed service."""

    try:
        changes = service_admin.build_scale_changes(
            replicas=replicas,
            cpu_limit=cpu_limit,
            gpu_limit=gpu_limit,
            memory_limit=memory_limit,
            concurrent_jobs=concurrent_jobs,
        )
    except MlxError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if all(value is None for value in changes.values()):
        raise typer.BadParameter("nothing to change; pass at least one limit or --replicas")

    ctx = AppContext.from_settings()
    _execute(service_admin.scale_service(ctx, name, version, changes))
    _console.print(f"[green]Scaled[/green] {name} version {version}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
