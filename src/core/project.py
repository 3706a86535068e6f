"""Service project layout.

Lives in `core/` because:
- It centralizes *which* files a service directory must provide (schema,
  manifest, Dockerfile) without coupling that knowledge to the CLI.
- Deploy, test and run all check the same files before touching anything external.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from core.config import AppSettings
from core.errors import ConfigError

DOCKERFILE_NAMES = ("Dockerfile", "Containerfile")


@dataclass(frozen=True)
class ServiceProject:
    """Paths of one service directory."""

    root: Path
    schema_path: Path
    manifest_path: Path

    @classmethod
    def at(cls, root: Path | None = None, settings: AppSettings | None = None) -> "ServiceProject":
        settings = settings or AppSettings()
        base = (root or Path.cwd()).resolve()
        return cls(
            root=base,
            schema_path=base / settings.schema_file,
            manifest_path=base / settings.manifest_file,
        )

    def containerfile(self) -> Path | None:
        for name in DOCKERFILE_NAMES:
            candidate = self.root / name
            if candidate.is_file():
                return candidate
        return None

    def require_files(self, *, containerfile: bool = False) -> None:
        """Fail with `ConfigError` listing every missing file."""

        missing = [p.name for p in (self.schema_path, self.manifest_path) if not p.is_file()]
        if containerfile and self.containerfile() is None:
            missing.append(" or ".join(DOCKERFILE_NAMES))
        if missing:
            raise ConfigError(
                f"Required file(s) not found in {self.root}: {', '.join(missing)} "
                "- hint: cd into your service"
            )
