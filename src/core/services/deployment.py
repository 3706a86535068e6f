"""Deployment submission.

Flow of `deploy_service`:

1. Load the manifest and validate architecture/credentials (no side effects yet).
2. Regenerate the schema file with `schema_build_command`, then load it.
3. Resolve the control-plane endpoint.
4. Build, tag and push a new image (fresh UUID-based identity every time).
5. Assemble the `DeploymentRequest` and POST it to `/upload_service`.

There is no retry: a failed submission is re-invoked by the user, which mints a
new image and a new identity.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from adapters.control_plane import ControlPlaneClient
from core.context import AppContext
from core.domain.models import (
    DeploymentRequest,
    ResourceRequest,
    ResourceSpec,
    ServiceManifest,
    ServiceSchema,
)
from core.errors import ConfigError
from core.project import ServiceProject
from core.services.image_pipeline import ImageBuildResult, ImagePipeline
from core.services.manifest_loader import load_manifest
from core.services.schema_normalizer import load_service_schema

log = logging.getLogger(__name__)

UPLOAD_PATH = "/upload_service"


def to_quantity(value: int | float | str | None, *, field: str = "quantity") -> str:
    """Normalize a numeric manifest value into a quantity string."""

    if value is None:
        return "0"
    if isinstance(value, bool):
        raise ConfigError(f"Resource '{field}' must be a number or a quantity string, got {value!r}.")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    text = value.strip()
    if not text:
        raise ConfigError(f"Resource '{field}' is empty.")
    return text


def memory_quantity(value: int | float | str) -> str:
    """Memory in `Mi` unless the manifest already names a unit."""

    quantity = to_quantity(value, field="memory_limit")
    if quantity.replace(".", "", 1).isdigit():
        return f"{quantity}Mi"
    return quantity


def build_resource_request(resources: ResourceSpec, *, replicas: int | None = None) -> ResourceRequest:
    gpu_limit = to_quantity(resources.gpu_limit, field="gpu_limit")
    return ResourceRequest(
        replicas=replicas or resources.replicas or 1,
        cpu_limit=to_quantity(resources.cpu_limit, field="cpu_limit"),
        memory_limit=memory_quantity(resources.memory_limit),
        use_gpu=resources.gpu_limit is not None and gpu_limit not in ("0", "0.0"),
        gpu_limit=gpu_limit,
        concurrent_jobs=resources.concurrent_jobs,
    )


def build_deployment_request(
    manifest: ServiceManifest,
    schema: ServiceSchema,
    image_uri: str,
    *,
    env_vars: dict[str, str] | None = None,
    replicas: int | None = None,
) -> DeploymentRequest:
    return DeploymentRequest(
        service_name=manifest.service_name,
        image_uri=image_uri,
        resource_request=build_resource_request(manifest.resources, replicas=replicas),
        service_schema=schema,
        env_vars=dict(env_vars or {}),
    )


async def submit_deployment(request: DeploymentRequest, *, control_plane: ControlPlaneClient) -> int:
    """POST the request once; returns the HTTP status on acceptance."""

    log.info("Submitting %s to %s", request.service_name, control_plane.url(UPLOAD_PATH))
    log.debug("DeploymentRequest: %s", request.model_dump_json())
    response = await control_plane.upload_service(request)
    log.info("Service %s has been deployed successfully", request.service_name)
    return response.status_code


@dataclass
class DeploymentResult:
    request: DeploymentRequest
    image: ImageBuildResult
    endpoint: str
    status_code: int


def export_deployment_request(*, request: DeploymentRequest, output_path: Path) -> Path:
    """Write the exact `/upload_service` payload as sorted UTF-8 JSON."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = request.model_dump(mode="json")
    output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return output_path


async def regenerate_schema(ctx: AppContext, project: ServiceProject) -> None:
    """Let the service rewrite its schema file so the deploy never ships a stale one."""

    command = ctx.settings.schema_build_command
    if not command:
        log.warning("Schema regeneration disabled; using %s as is", project.schema_path)
        return

    log.info("Regenerating service schema: %s", " ".join(command))
    try:
        process = await ctx.launcher.start(command, cwd=project.root)
    except OSError as exc:
        raise ConfigError(f"Could not regenerate the schema with `{' '.join(command)}`: {exc}") from exc
    code = await process.wait(None)
    if code != 0:
        raise ConfigError(f"Schema regeneration `{' '.join(command)}` exited with {code}.")


def _load_schema(project: ServiceProject) -> ServiceSchema:
    schema = load_service_schema(project.schema_path)
    modified = datetime.fromtimestamp(project.schema_path.stat().st_mtime)
    log.info("Using service schema %s (modified %s)", project.schema_path, modified.isoformat(timespec="seconds"))
    return schema


async def deploy_service(
    ctx: AppContext,
    project: ServiceProject,
    *,
    replicas: int | None = None,
    env_vars: dict[str, str] | None = None,
    request_output: Path | None = None,
    build_schema: bool = True,
) -> DeploymentResult:
    settings = ctx.settings
    project.require_files(containerfile=True)
    manifest = load_manifest(project.manifest_path)

    pipeline = ImagePipeline(
        ctx.engine,
        registry=settings.image_registry,
        username=settings.registry_username,
        token=settings.registry_token,
        context_dir=project.root,
        remove_local_image=settings.remove_local_image,
    )
    pipeline.check(manifest.resources.arch)

    if build_schema:
        await regenerate_schema(ctx, project)
    schema = _load_schema(project)

    async with ctx.http_client_factory() as client:
        control_plane = await ctx.control_plane(client)
        image = await pipeline.run(manifest.service_name, manifest.resources.arch)
        request = build_deployment_request(
            manifest, schema, image.image_uri, env_vars=env_vars, replicas=replicas
        )
        if request_output is not None:
            export_deployment_request(request=request, output_path=request_output)
        status_code = await submit_deployment(request, control_plane=control_plane)

    return DeploymentResult(
        request=request,
        image=image,
        endpoint=control_plane.base_url,
        status_code=status_code,
    )
