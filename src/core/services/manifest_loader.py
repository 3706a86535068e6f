"""Service manifest loader.

The manifest is a TOML document:

    service = "mnist"
    stage = "dev"

    [resources]
    cpu_limit = 1
    memory_limit = 2048
    concurrent_jobs = 2
    arch = "amd64"

    [test.foo_test]
    path_image = "src/mnist/dummy_data/image_0.png"

`tomllib` keeps tables in declaration order, so `ServiceManifest.tests` preserves
the order in which tests were written.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from core.domain.models import ServiceManifest
from core.errors import ConfigError

log = logging.getLogger(__name__)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {err.get('msg')}")
    return "; ".join(parts)


def parse_manifest(text: str) -> ServiceManifest:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Service manifest is not valid TOML: {exc}") from exc

    raw_tests = data.get("test", {})
    if not isinstance(raw_tests, dict) or any(not isinstance(v, dict) for v in raw_tests.values()):
        raise ConfigError("Manifest 'test' must contain named tables, e.g. [test.my_test].")

    try:
        return ServiceManifest.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid service manifest: {_describe(exc)}") from exc


def load_manifest(path: Path) -> ServiceManifest:
    """Read and validate the manifest file at `path`."""

    if not path.is_file():
        raise ConfigError(f"Service manifest not found: {path} - hint: cd into your service")
    log.info("Reading service manifest %s", path)
    manifest = parse_manifest(path.read_text(encoding="utf-8"))
    log.debug("Manifest for '%s' declares %d test(s)", manifest.service_name, len(manifest.tests))
    return manifest
