import asyncio
import json

import httpx
import pytest

from conftest import LOCAL_URL, FakeEngine, FakeLauncher, FakeProcess, make_context, make_settings
from core.domain.models import DeploymentRequest, ResourceRequest, ResourceSpec, ServiceSchema
from core.errors import ConfigError, PipelineStageError, RequestRejectedError
from core.project import ServiceProject
from core.services.deployment import (
    build_resource_request,
    deploy_service,
    export_deployment_request,
    memory_quantity,
    to_quantity,
)


@pytest.mark.parametrize(
    "value, expected",
    [(None, "0"), (1, "1"), (2.0, "2"), (0.5, "0.5"), (" 500m ", "500m")],
)
def test_to_quantity(value, expected):
    assert to_quantity(value) == expected


def test_to_quantity_rejects_bool_and_blank():
    with pytest.raises(ConfigError):
        to_quantity(True)
    with pytest.raises(ConfigError):
        to_quantity("  ")


def test_memory_quantity_defaults_to_mebibytes():
    assert memory_quantity(2048) == "2048Mi"
    assert memory_quantity("2Gi") == "2Gi"


def test_resource_request_without_gpu():
    request = build_resource_request(ResourceSpec(cpu_limit=1, memory_limit=2048, concurrent_jobs=2))

    assert request.replicas == 1
    assert request.cpu_limit == "1"
    assert request.memory_limit == "2048Mi"
    assert request.use_gpu is False
    assert request.gpu_limit == "0"


def test_resource_request_with_gpu_and_replica_override():
    spec = ResourceSpec(cpu_limit="500m", gpu_limit=1, memory_limit="4Gi", concurrent_jobs=1, replicas=2)

    assert build_resource_request(spec).replicas == 2
    request = build_resource_request(spec, replicas=5)
    assert request.replicas == 5
    assert request.use_gpu is True
    assert request.gpu_limit == "1"


class UploadRecorder:
    def __init__(self, status=200):
        self.status = status
        self.uploads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200)
        assert request.url.path == "/upload_service"
        self.uploads.append(json.loads(request.content))
        return httpx.Response(self.status, text="nope" if self.status >= 400 else "ok")


def test_deploy_builds_pushes_and_submits(service_dir):
    recorder = UploadRecorder()
    engine = FakeEngine()
    ctx = make_context(recorder, engine=engine)
    project = ServiceProject.at(service_dir, ctx.settings)

    result = asyncio.run(deploy_service(ctx, project, env_vars={"MODEL": "small"}))

    assert result.endpoint == LOCAL_URL
    assert result.status_code == 200
    (body,) = recorder.uploads
    assert body["service_name"] == "mnist"
    assert body["image_uri"] == result.image.image_uri
    assert body["image_uri"].startswith("ghcr.io/acme/models:mnist-")
    assert body["env_vars"] == {"MODEL": "small"}
    assert body["resource_request"] == {
        "replicas": 1,
        "cpu_limit": "1",
        "memory_limit": "2048Mi",
        "use_gpu": False,
        "gpu_limit": "0",
        "concurrent_jobs": 2,
    }
    assert body["service_schema"]["input"]["body"][0] == {
        "name": "path_image",
        "dtype": "string",
        "required": True,
    }


def test_each_deploy_gets_a_fresh_image(service_dir):
    recorder = UploadRecorder()
    ctx = make_context(recorder)
    project = ServiceProject.at(service_dir, ctx.settings)

    first = asyncio.run(deploy_service(ctx, project))
    second = asyncio.run(deploy_service(ctx, project))

    assert first.image.image_uri != second.image.image_uri
    assert len(recorder.uploads) == 2


def test_export_writes_sorted_json_in_nested_dirs(tmp_path):
    request = DeploymentRequest(
        service_name="mnist",
        image_uri="ghcr.io/acme/models:mnist-1",
        resource_request=ResourceRequest(memory_limit="1Gi", concurrent_jobs=1),
        service_schema=ServiceSchema(),
    )

    path = export_deployment_request(request=request, output_path=tmp_path / "nested" / "req.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert list(data) == sorted(data)
    assert data["image_uri"] == "ghcr.io/acme/models:mnist-1"
    assert data["resource_request"]["replicas"] == 1


def test_deploy_saves_request(service_dir, tmp_path):
    ctx = make_context(UploadRecorder())
    out = tmp_path / "out" / "request.json"

    asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings), request_output=out))

    saved = json.loads(out.read_text(encoding="utf-8"))
    assert saved["service_name"] == "mnist"


def test_rejected_submission(service_dir):
    ctx = make_context(UploadRecorder(status=422))

    with pytest.raises(RequestRejectedError) as err:
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))
    assert err.value.status_code == 422


def test_push_failure_stops_before_submit(service_dir):
    recorder = UploadRecorder()
    ctx = make_context(recorder, engine=FakeEngine(fail_on="push"))

    with pytest.raises(PipelineStageError) as err:
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))
    assert err.value.stage == "push"
    assert recorder.uploads == []


def test_missing_token_fails_before_engine_or_network(service_dir):
    recorder = UploadRecorder()
    engine = FakeEngine()
    launcher = FakeLauncher()
    ctx = make_context(recorder, engine=engine, launcher=launcher, settings=make_settings(registry_token=None))

    with pytest.raises(ConfigError):
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))
    assert engine.calls == []
    assert ctx.resolver.probe_rounds == 0
    assert launcher.started == []


def test_missing_dockerfile(service_dir):
    (service_dir / "Dockerfile").unlink()
    ctx = make_context(UploadRecorder())

    with pytest.raises(ConfigError) as err:
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))
    assert "Dockerfile" in str(err.value)


def test_deploy_regenerates_the_schema_first(service_dir):
    launcher = FakeLauncher()
    ctx = make_context(UploadRecorder(), launcher=launcher)

    asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))

    assert launcher.started == [(ctx.settings.schema_build_command, service_dir.resolve())]
    assert launcher.process.wait_timeouts == [None]


def test_failed_schema_regeneration_stops_before_engine(service_dir):
    recorder = UploadRecorder()
    engine = FakeEngine()
    ctx = make_context(recorder, engine=engine, launcher=FakeLauncher(FakeProcess(exit_code=1)))

    with pytest.raises(ConfigError) as err:
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))
    assert "exited with 1" in str(err.value)
    assert engine.calls == []
    assert recorder.uploads == []


def test_missing_schema_runner_is_a_config_error(service_dir):
    ctx = make_context(UploadRecorder(), launcher=FakeLauncher(error=FileNotFoundError("pdm")))

    with pytest.raises(ConfigError):
        asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings)))


@pytest.mark.parametrize("settings, build_schema", [({}, False), ({"schema_build_command": []}, True)])
def test_schema_regeneration_can_be_skipped(service_dir, settings, build_schema):
    launcher = FakeLauncher()
    recorder = UploadRecorder()
    ctx = make_context(recorder, launcher=launcher, settings=make_settings(**settings))

    asyncio.run(deploy_service(ctx, ServiceProject.at(service_dir, ctx.settings), build_schema=build_schema))

    assert launcher.started == []
    assert len(recorder.uploads) == 1
