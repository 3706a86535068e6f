"""Administration of deployed services: list, remove, scale, jobs and logs.

Every call resolves the control plane through the context's resolver, so a
command probes at most once no matter how many requests it sends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from adapters.control_plane import ControlPlaneClient
from core.context import AppContext
from core.services.deployment import memory_quantity, to_quantity

T = TypeVar("T")


async def _with_control_plane(ctx: AppContext, call: Callable[[ControlPlaneClient], Awaitable[T]]) -> T:
    async with ctx.http_client_factory() as client:
        control_plane = await ctx.control_plane(client)
        return await call(control_plane)


async def list_services(ctx: AppContext, service_name: str | None = None) -> list[dict[str, Any]]:
    return await _with_control_plane(ctx, lambda cp: cp.list_services(service_name))


async def delete_service(ctx: AppContext, service_name: str, version: int | None = None) -> None:
    await _with_control_plane(ctx, lambda cp: cp.delete_service(service_name, version))


def build_scale_changes(
    *,
    replicas: int | None = None,
    cpu_limit: str | None = None,
    gpu_limit: str | None = None,
    memory_limit: str | None = None,
    concurrent_jobs: int | None = None,
) -> dict[str, Any]:
    """Body for `/scale_service`; unset values stay null so the server keeps them."""

    return {
        "replicas": replicas,
        "cpu_limit": to_quantity(cpu_limit, field="cpu_limit") if cpu_limit is not None else None,
        "gpu_limit": to_quantity(gpu_limit, field="gpu_limit") if gpu_limit is not None else None,
        "memory_limit": memory_quantity(memory_limit) if memory_limit is not None else None,
        "concurrent_jobs": concurrent_jobs,
    }


async def scale_service(ctx: AppContext, service_name: str, version: str, changes: dict[str, Any]) -> None:
    await _with_control_plane(ctx, lambda cp: cp.scale_service(service_name, version, changes))


async def list_jobs(ctx: AppContext, service_name: str) -> dict[str, dict[str, Any]]:
    return await _with_control_plane(ctx, lambda cp: cp.list_jobs(service_name))


async def job_logs(ctx: AppContext, service_name: str, job_id: str, **flags: bool) -> dict[str, Any]:
    return await _with_control_plane(ctx, lambda cp: cp.job_logs(service_name, job_id, **flags))
