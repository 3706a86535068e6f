"""CLI UI components (Rich).

Why separate components:
- Keeps command logic apart from presentation details.
- Tables and panels are reused by several commands and by `doctor`.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from rich.align import Align
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.services.deployment import DeploymentResult
from core.services.orchestrator import TestRunReport


def print_banner(console: Console) -> None:
    """Print the welcome banner.

    Kept here so non-interactive modes (JSON, pipelines) can skip it.
    """

    title = Text("MLX", style="bold cyan")
    subtitle = Text("Package • Deploy • Test inference services", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def _parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def elapsed_ms(started_at: Any, ended_at: Any) -> str:
    start = _parse_ts(started_at)
    end = _parse_ts(ended_at)
    if start is None or end is None:
        return "-"
    return f"{int((end - start).total_seconds() * 1000)} ms"


def _pretty(value: Any) -> str:
    """Pretty-print JSON payloads that arrive as strings."""

    if isinstance(value, str):
        try:
            return json.dumps(json.loads(value), indent=2)
        except ValueError:
            return value
    return json.dumps(value, indent=2, default=str)


def build_services_table(services: list[dict[str, Any]]) -> Table:
    table = Table(title="Services")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Version", justify="center")
    table.add_column("CPU Limit")
    table.add_column("Memory Limit")
    table.add_column("Replicas", justify="center")
    table.add_column("Running", justify="center")
    table.add_column("Pod ID", style="dim")

    for service in services:
        resources = service.get("resource_request") or {}
        running = bool(service.get("running", False))
        table.add_row(
            str(service.get("name") or "-"),
            str(service.get("version") or 0),
            str(resources.get("cpu_limit") or "-"),
            str(resources.get("memory_limit") or "-"),
            str(resources.get("replicas") or 0),
            Text(str(running).lower(), style="green" if running else "red"),
            str(service.get("pod_id") or "-"),
        )
    return table


def build_jobs_table(jobs: dict[str, dict[str, Any]]) -> Table:
    table = Table(title="Jobs")
    table.add_column("Job ID", style="cyan", no_wrap=True)
    table.add_column("Start Time", justify="center")
    table.add_column("Elapsed Time", justify="center")
    table.add_column("Status", justify="center")

    for job_id, job in jobs.items():
        ended_at = job.get("ended_at") or ""
        table.add_row(
            job_id,
            str(job.get("started_at") or ""),
            elapsed_ms(job.get("started_at"), ended_at),
            "ended" if ended_at else "started",
        )
    return table


def build_job_log_panel(log_data: dict[str, Any]) -> Panel:
    """Input, response, timer and log sections of a single job."""

    sections: list[Panel] = []
    if "validated_input" in log_data:
        sections.append(Panel(_pretty(log_data["validated_input"]), title="User Input", border_style="blue"))
    if "response" in log_data:
        sections.append(Panel(_pretty(log_data["response"]), title="Server Response", border_style="green"))

    timer = Table.grid(padding=(0, 2))
    timer.add_column(style="bold")
    timer.add_column()
    if "started_at" in log_data:
        timer.add_row("Started At", str(log_data["started_at"]))
    if "ended_at" in log_data:
        timer.add_row("Ended At", str(log_data["ended_at"]))
    timer.add_row("Elapsed Time", elapsed_ms(log_data.get("started_at"), log_data.get("ended_at")))
    sections.append(Panel(timer, title="Timer", border_style="yellow"))

    logs = log_data.get("logs")
    if isinstance(logs, str) and logs:
        sections.append(Panel(Text(logs), title="Logs", border_style="magenta"))

    return Panel(Group(*sections), title="Job Log", border_style="cyan")


def build_test_report_table(report: TestRunReport) -> Table:
    table = Table(title=f"Tests for {report.service_name} ({report.mode.value})")
    table.add_column("Test", style="cyan", no_wrap=True)
    table.add_column("Result")
    table.add_column("Status", justify="center")
    table.add_column("Details", style="dim")

    for outcome in report.outcomes:
        result = Text("OK", style="green") if outcome.ok else Text("FAIL", style="red")
        details = outcome.error or (outcome.body or "")
        table.add_row(
            outcome.name,
            result,
            str(outcome.status_code) if outcome.status_code is not None else "-",
            details[:200],
        )
    return table


def build_deployment_panel(result: DeploymentResult) -> Panel:
    body = Text()
    body.append("Service: ", style="bold")
    body.append(f"{result.request.service_name}\n")
    body.append("Image: ", style="bold")
    body.append(f"{result.image.image_uri}\n")
    body.append("Platform: ", style="bold")
    body.append(f"{result.image.platform}\n")
    body.append("Control plane: ", style="bold")
    body.append(f"{result.endpoint} (HTTP {result.status_code})\n")
    resources = result.request.resource_request
    body.append(
        f"\nreplicas={resources.replicas} cpu={resources.cpu_limit} memory={resources.memory_limit} "
        f"gpu={resources.gpu_limit} concurrent_jobs={resources.concurrent_jobs}",
        style="dim",
    )
    return Panel(body, title=Text("Deployed", style="bold green"), border_style="green")
