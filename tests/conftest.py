# tests/conftest.py
import sys
import pathlib
from pathlib import Path
from typing import Callable

import httpx
import pytest

# Add <repo>/src to sys.path so `import core...` works under pytest
ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from core.config import AppSettings  # noqa: E402
from core.context import AppContext  # noqa: E402
from core.services.endpoint_resolver import EndpointResolver  # noqa: E402

LOCAL_URL = "http://control.local:3000"
REMOTE_URL = "http://control.remote:30000"

SCHEMA_JSON = """
{
  "input": {
    "path": null,
    "query": null,
    "body": [
      {"name": "path_image", "dtype": "string", "required": "True"},
      {"name": "threshold", "dtype": "float", "required": false}
    ]
  },
  "output": [
    {"name": "label", "dtype": "int", "required": true}
  ]
}
"""

MANIFEST_TOML = """
service = "mnist"
stage = "dev"

[resources]
cpu_limit = 1
memory_limit = 2048
concurrent_jobs = 2
arch = "amd64"

[test.foo_test]
path_image = "src/mnist/dummy_data/image_0.png"

[test.bar_test]
path_image = "src/mnist/dummy_data/image_1.png"
threshold = 0.5
"""


class FakeEngine:
    name = "fake"

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[tuple] = []
        self.fail_on = fail_on

    async def _record(self, call: tuple) -> None:
        from core.interfaces.engine import EngineCommandError

        self.calls.append(call)
        if call[0] == self.fail_on:
            raise EngineCommandError(["fake", call[0]], 125, "boom\n")

    async def ensure_available(self) -> None:
        await self._record(("ensure_available",))

    async def build(self, *, tag, platform, context_dir) -> None:
        await self._record(("build", tag, platform, context_dir))

    async def tag(self, source, target) -> None:
        await self._record(("tag", source, target))

    async def login(self, *, registry, username, password) -> None:
        await self._record(("login", registry, username, password))

    async def push(self, image_uri) -> None:
        await self._record(("push", image_uri))

    async def remove(self, image) -> None:
        await self._record(("remove", image))


class FakePublisher:
    def __init__(self, fail_for: Callable[[str], bool] | None = None) -> None:
        self.messages: list[tuple[str, str]] = []
        self.closed = False
        self.fail_for = fail_for

    async def publish(self, channel: str, message: str) -> int:
        from core.errors import NetworkError

        if self.fail_for is not None and self.fail_for(message):
            raise NetworkError("redis down")
        self.messages.append((channel, message))
        return 1

    async def aclose(self) -> None:
        self.closed = True


class FakeProcess:
    pid = 4242

    def __init__(self, exit_code: int | None = 0) -> None:
        # None means the process ignores the stop sentinel.
        self.exit_code = exit_code
        self.wait_timeouts: list[float | None] = []
        self.terminated = False

    async def wait(self, timeout):
        self.wait_timeouts.append(timeout)
        return self.exit_code

    async def terminate(self):
        self.terminated = True
        return -15


class FakeLauncher:
    def __init__(self, process: FakeProcess | None = None, error: Exception | None = None) -> None:
        self.process = process or FakeProcess()
        self.error = error
        self.started: list[tuple[list[str], Path]] = []

    async def start(self, command, *, cwd):
        if self.error is not None:
            raise self.error
        self.started.append((list(command), cwd))
        return self.process


def make_settings(**overrides) -> AppSettings:
    values = dict(
        local_server_url=LOCAL_URL,
        remote_server_url=REMOTE_URL,
        image_registry="ghcr.io/acme/models",
        registry_username="ci-bot",
        registry_token="s3cr3t-token",
        startup_grace_seconds=0,
        shutdown_timeout_seconds=2,
    )
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


def make_context(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    settings: AppSettings | None = None,
    engine: FakeEngine | None = None,
    launcher: FakeLauncher | None = None,
    publisher: FakePublisher | None = None,
) -> AppContext:
    settings = settings or make_settings()
    transport = httpx.MockTransport(handler)

    def client_factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=transport)

    return AppContext(
        settings=settings,
        resolver=EndpointResolver(settings.server_candidates, client_factory=client_factory),
        engine=engine or FakeEngine(),
        launcher=launcher or FakeLauncher(),
        http_client_factory=client_factory,
        publisher_factory=lambda: publisher or FakePublisher(),
    )


@pytest.fixture
def service_dir(tmp_path: Path) -> Path:
    (tmp_path / "config.json").write_text(SCHEMA_JSON, encoding="utf-8")
    (tmp_path / "service.toml").write_text(MANIFEST_TOML, encoding="utf-8")
    (tmp_path / "Dockerfile").write_text("FROM python:3.11-slim\n", encoding="utf-8")
    return tmp_path
