"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without leaking into the CLI.
- Adapters (HTTP, registry, redis) read their config consistently.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user config directory (cross-platform, no extra dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "mlx"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "mlx"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "mlx"
    return Path.home() / ".config" / "mlx"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write or update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# MLX user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    # The file may hold a registry token.
    env_path.chmod(0o600)
    return env_path


class ContainerEngineKind(str, Enum):
    """Container engine CLIs the image pipeline can drive."""

    PODMAN = "podman"
    DOCKER = "docker"


class AppSettings(BaseSettings):
    """Central application configuration.

    Why pydantic-settings:
    - Typed, validated env vars at the edge, no parsing logic in the core.
    - One config contract shared by the CLI and every adapter.
    """

    model_config = SettingsConfigDict(
        env_prefix="MLX_",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
        # Project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Control plane
    local_server_url: str = Field(
        default="http://localhost:3000",
        min_length=8,
        description="Preferred control-plane base URL, probed first.",
    )
    remote_server_url: str = Field(
        default="http://3.132.162.86:30000",
        min_length=8,
        description="Fallback control-plane base URL.",
    )
    probe_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for each liveness probe (seconds).",
    )
    http_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for control-plane requests (seconds).",
    )
    user_agent: str = Field(
        default="mlx-client/0.1",
        min_length=1,
        description="User-Agent sent to the control plane.",
    )

    # Image registry
    image_registry: str = Field(
        default="ghcr.io/alexlatif/wondera",
        min_length=1,
        description="Repository that receives service images (<host>/<path>).",
    )
    registry_username: str = Field(
        default="mlx",
        min_length=1,
        description="Username for the registry login.",
    )
    registry_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("MLX_REGISTRY_TOKEN", "GHCR_TOKEN", "registry_token"),
        description="Registry token, handed to the engine through stdin only.",
    )
    container_engine: ContainerEngineKind = Field(
        default=ContainerEngineKind.PODMAN,
        description="Container engine CLI used to build and push images.",
    )
    remove_local_image: bool = Field(
        default=False,
        description="Remove the local build image after a successful push.",
    )

    # Local test mode
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        min_length=8,
        description="Redis URL for the local test channel.",
    )
    redis_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Connect and socket timeout for redis (seconds).",
    )
    test_channel: str = Field(
        default="test-channel",
        min_length=1,
        description="Pub/sub channel the local service listens on.",
    )
    startup_grace_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Wait after spawning the local service before publishing tests.",
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Bound for joining the local service after the stop sentinel.",
    )
    service_command: list[str] = Field(
        default_factory=lambda: ["pdm", "run", "main.py", "--build", "0"],
        min_length=1,
        description="Command that starts the user's service locally.",
    )
    schema_build_command: list[str] = Field(
        default_factory=lambda: ["pdm", "run", "main.py", "--build", "1"],
        description="Command that regenerates the schema file before a deploy; empty disables it.",
    )

    # Project layout
    schema_file: str = Field(
        default="config.json",
        min_length=1,
        description="Service schema file, relative to the service directory.",
    )
    manifest_file: str = Field(
        default="service.toml",
        min_length=1,
        description="Service manifest file, relative to the service directory.",
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level when --verbose is not given.",
    )

    @property
    def registry_host(self) -> str:
        return self.image_registry.split("/", 1)[0]

    @property
    def server_candidates(self) -> list[str]:
        return [self.local_server_url, self.remote_server_url]
