"""Container image pipeline: build, tag, login, push.

Each stage runs strictly after the previous one succeeded. A failing stage stops
the pipeline and is reported as `PipelineStageError(stage=...)`; completed stages
are never retried. Configuration problems (architecture, missing credential) are
raised as `ConfigError` before the engine is touched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable

from pydantic import SecretStr

from core.domain.arch import Architecture
from core.errors import ConfigError, PipelineStageError
from core.interfaces.engine import ContainerEngine, EngineCommandError

log = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    PREFLIGHT = "preflight"
    BUILD = "build"
    TAG = "tag"
    LOGIN = "login"
    PUSH = "push"
    CLEANUP = "cleanup"


def resolve_platform(arch: str) -> str:
    """Map a manifest architecture to the engine's `--platform` value."""

    parsed = Architecture.parse(arch)
    if parsed is None:
        supported = ", ".join(a.value for a in Architecture)
        raise ConfigError(f"Unsupported architecture '{arch}' (supported: {supported}).")
    return parsed.platform()


def new_service_id(service_name: str) -> str:
    """Fresh artifact identity: `<service>-<uuid4>`."""

    return f"{service_name}-{uuid.uuid4()}"


@dataclass
class ImageBuildResult:
    service_id: str
    image_uri: str
    platform: str
    completed: list[PipelineStage] = field(default_factory=list)


class ImagePipeline:
    """Drives a `ContainerEngine` through the publish stages for one service."""

    def __init__(
        self,
        engine: ContainerEngine,
        *,
        registry: str,
        username: str,
        token: SecretStr | None,
        context_dir: Path,
        remove_local_image: bool = False,
    ) -> None:
        self._engine = engine
        self._registry = registry.rstrip("/")
        self._username = username
        self._token = token
        self._context_dir = context_dir
        self._remove_local_image = remove_local_image

    @property
    def registry_host(self) -> str:
        return self._registry.split("/", 1)[0]

    def check(self, arch: str) -> str:
        """Validate configuration without side effects; returns the platform flag."""

        platform = resolve_platform(arch)
        self._require_token()
        return platform

    def _require_token(self) -> SecretStr:
        if self._token is None or not self._token.get_secret_value():
            raise ConfigError(
                "No registry token configured. Set MLX_REGISTRY_TOKEN (or GHCR_TOKEN) "
                "or run `mlx doctor setup-registry`."
            )
        return self._token

    async def _stage(self, stage: PipelineStage, action: Awaitable[None], result: ImageBuildResult) -> None:
        log.info("Image pipeline: %s", stage.value)
        try:
            await action
        except EngineCommandError as exc:
            raise PipelineStageError(stage.value, str(exc)) from exc
        except OSError as exc:
            raise PipelineStageError(stage.value, f"{self._engine.name} could not be executed: {exc}") from exc
        result.completed.append(stage)

    async def _login(self, token: SecretStr) -> None:
        await self._engine.login(
            registry=self.registry_host,
            username=self._username,
            password=token.get_secret_value().encode("utf-8"),
        )

    async def run(self, service_name: str, arch: str) -> ImageBuildResult:
        """Build and publish a new image for `service_name`.

        Returns the pushed, remotely addressable image reference.
        """

        platform = resolve_platform(arch)
        token = self._require_token()
        service_id = new_service_id(service_name)
        result = ImageBuildResult(
            service_id=service_id,
            image_uri=f"{self._registry}:{service_id}",
            platform=platform,
        )

        log.info("Building, tagging and pushing %s for %s (eta 2-5 mins)", result.image_uri, platform)
        await self._stage(PipelineStage.PREFLIGHT, self._engine.ensure_available(), result)
        await self._stage(
            PipelineStage.BUILD,
            self._engine.build(tag=service_id, platform=platform, context_dir=self._context_dir),
            result,
        )
        await self._stage(PipelineStage.TAG, self._engine.tag(service_id, result.image_uri), result)
        await self._stage(PipelineStage.LOGIN, self._login(token), result)
        await self._stage(PipelineStage.PUSH, self._engine.push(result.image_uri), result)
        log.info("Image %s has been pushed to the registry", result.image_uri)

        if self._remove_local_image:
            await self._cleanup(result)
        return result

    async def _cleanup(self, result: ImageBuildResult) -> None:
        for image in (result.image_uri, result.service_id):
            try:
                await self._engine.remove(image)
            except (EngineCommandError, OSError) as exc:
                log.warning("Could not remove local image %s: %s", image, exc)
                return
        result.completed.append(PipelineStage.CLEANUP)
