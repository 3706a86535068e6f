"""Test execution for services.

Each invocation walks `Loaded -> Validated -> {LocalRunning | RemoteInvoking}
-> Draining -> Done`:

- Loaded: the manifest's test table and the service schema are read and the
  requested tests selected (declaration order).
- Validated: every selected fixture is checked against the body parameters.
  All problems are collected first; nothing runs if any test is invalid.
- Local mode: the service is spawned as a child process and each test is
  published to the test channel, followed by the `stop` sentinel. The process is
  then joined with a bounded timeout and terminated if it does not exit.
- Remote mode: each test is POSTed to `/handle_request/<service>` on the
  resolved control plane; calls are independent and may complete in any order.

A failed publish or HTTP call only fails that test; the rest still run.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from adapters.control_plane import ControlPlaneClient
from core.context import AppContext
from core.domain.models import ServiceManifest, ServiceSchema
from core.errors import ConfigError, NetworkError, UnknownTestError, ValidationError, ValidationIssue
from core.interfaces.messaging import MessagePublisher
from core.interfaces.process import ServiceProcess
from core.project import ServiceProject
from core.services.manifest_loader import load_manifest
from core.services.schema_normalizer import load_service_schema

log = logging.getLogger(__name__)

STOP_SENTINEL = "stop"


class RunMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class RunState(str, Enum):
    LOADED = "loaded"
    VALIDATED = "validated"
    LOCAL_RUNNING = "local_running"
    REMOTE_INVOKING = "remote_invoking"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class TestCase:
    """A named fixture taken verbatim from the manifest."""

    __test__ = False

    name: str
    fields: dict[str, Any]


@dataclass
class TestOutcome:
    """Result of dispatching one test.

    `ok` means "published" in local mode and "2xx response" in remote mode.
    """

    __test__ = False

    name: str
    ok: bool
    status_code: int | None = None
    body: str | None = None
    error: str | None = None


@dataclass
class TestRunReport:
    __test__ = False

    service_name: str
    mode: RunMode
    outcomes: list[TestOutcome] = field(default_factory=list)
    states: list[RunState] = field(default_factory=list)
    process_exit_code: int | None = None
    process_timed_out: bool = False

    @property
    def failed(self) -> list[TestOutcome]:
        return [o for o in self.outcomes if not o.ok]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "int": _is_int,
    "integer": _is_int,
    "float": lambda v: isinstance(v, float),
}


def check_value_type(dtype: str, value: Any) -> bool:
    """True when `value` is a literal of `dtype`; unknown dtypes always pass."""

    check = _TYPE_CHECKS.get(dtype.strip().lower())
    return True if check is None else check(value)


def select_tests(manifest: ServiceManifest, test_name: str | None = None) -> list[TestCase]:
    if test_name is not None:
        if test_name not in manifest.tests:
            raise UnknownTestError(test_name, list(manifest.tests))
        return [TestCase(name=test_name, fields=dict(manifest.tests[test_name]))]
    return [TestCase(name=name, fields=dict(fields)) for name, fields in manifest.tests.items()]


def validate_tests(tests: list[TestCase], schema: ServiceSchema) -> None:
    """Check every fixture against the body parameters, then fail once with all issues."""

    issues: list[ValidationIssue] = []
    body_params = schema.body_params()
    for test in tests:
        for param in body_params:
            if param.name in test.fields:
                value = test.fields[param.name]
                if not check_value_type(param.dtype, value):
                    issues.append(
                        ValidationIssue(
                            test=test.name,
                            field=param.name,
                            message=(
                                f"expected '{param.dtype}' but found {value!r} "
                                f"({type(value).__name__}); keep the test case and service schema in sync"
                            ),
                        )
                    )
            elif param.required:
                issues.append(
                    ValidationIssue(
                        test=test.name,
                        field=param.name,
                        message="missing required parameter in the test case",
                    )
                )
    if issues:
        raise ValidationError(issues)
    log.info("All test cases validated successfully (%d test(s))", len(tests))


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    # TOML dates/times have no JSON form; send them as ISO strings.
    return json.loads(json.dumps(fields, default=str))


def build_test_envelope(test: TestCase, *, service_name: str, channel: str) -> str:
    """Message the local service consumes from the test channel."""

    request_data = json.dumps({"body": _jsonable(test.fields)})
    return json.dumps(
        {
            "request_data": request_data,
            "publish_channel": channel,
            "response_channel": f"py_service:{service_name}:output",
            "log_key": test.name,
        }
    )


class TestOrchestrator:
    """Runs the tests of one service project, locally or against the control plane."""

    __test__ = False

    def __init__(self, ctx: AppContext, project: ServiceProject) -> None:
        self._ctx = ctx
        self._project = project

    async def run(self, test_name: str | None = None, *, remote: bool = False) -> TestRunReport:
        self._project.require_files()
        manifest = load_manifest(self._project.manifest_path)
        schema = load_service_schema(self._project.schema_path)
        tests = select_tests(manifest, test_name)

        report = TestRunReport(
            service_name=manifest.service_name,
            mode=RunMode.REMOTE if remote else RunMode.LOCAL,
            states=[RunState.LOADED],
        )

        validate_tests(tests, schema)
        report.states.append(RunState.VALIDATED)

        if remote:
            await self._run_remote(manifest, tests, report)
        else:
            await self._run_local(manifest, tests, report)

        report.states.append(RunState.DONE)
        return report

    # -- local ---------------------------------------------------------------

    async def _start_service(self) -> ServiceProcess:
        command = self._ctx.settings.service_command
        try:
            return await self._ctx.launcher.start(command, cwd=self._project.root)
        except OSError as exc:
            raise ConfigError(f"Could not start the local service with `{' '.join(command)}`: {exc}") from exc

    async def _publish_tests(
        self,
        publisher: MessagePublisher,
        manifest: ServiceManifest,
        tests: list[TestCase],
        report: TestRunReport,
    ) -> None:
        channel = self._ctx.settings.test_channel
        for test in tests:
            log.info("Running test: '%s'", test.name)
            envelope = build_test_envelope(test, service_name=manifest.service_name, channel=channel)
            try:
                await publisher.publish(channel, envelope)
            except NetworkError as exc:
                log.error("Test '%s' could not be published: %s", test.name, exc)
                report.outcomes.append(TestOutcome(name=test.name, ok=False, error=str(exc)))
                continue
            report.outcomes.append(TestOutcome(name=test.name, ok=True))
        log.info("All tests published")

        log.info("Stopping local service...")
        try:
            await publisher.publish(channel, STOP_SENTINEL)
        except NetworkError as exc:
            log.error("Stop signal could not be published: %s", exc)

    async def _drain(self, process: ServiceProcess, report: TestRunReport) -> None:
        timeout = self._ctx.settings.shutdown_timeout_seconds
        code = await process.wait(timeout)
        if code is None:
            log.warning("Local service did not exit within %.0fs after the stop signal", timeout)
            report.process_timed_out = True
            code = await process.terminate()
        report.process_exit_code = code
        log.info("Local service exited with code %s", code)

    async def _run_local(self, manifest: ServiceManifest, tests: list[TestCase], report: TestRunReport) -> None:
        publisher = self._ctx.publisher_factory()
        try:
            log.info("Starting local service...")
            process = await self._start_service()
            report.states.append(RunState.LOCAL_RUNNING)
            try:
                await asyncio.sleep(self._ctx.settings.startup_grace_seconds)
                await self._publish_tests(publisher, manifest, tests, report)
            finally:
                report.states.append(RunState.DRAINING)
                await self._drain(process, report)
        finally:
            await publisher.aclose()

    # -- remote --------------------------------------------------------------

    @staticmethod
    async def _invoke(control_plane: ControlPlaneClient, service_name: str, test: TestCase) -> TestOutcome:
        log.info("Running test: '%s'", test.name)
        try:
            response = await control_plane.handle_request(service_name, _jsonable(test.fields))
        except NetworkError as exc:
            log.error("Test '%s' failed to reach the service: %s", test.name, exc)
            return TestOutcome(name=test.name, ok=False, error=str(exc))

        log.info("Service response status for '%s': %s", test.name, response.status_code)
        log.info("Service response body for '%s': %s", test.name, response.text)
        return TestOutcome(
            name=test.name,
            ok=response.is_success,
            status_code=response.status_code,
            body=response.text,
        )

    async def _run_remote(self, manifest: ServiceManifest, tests: list[TestCase], report: TestRunReport) -> None:
        async with self._ctx.http_client_factory() as client:
            control_plane = await self._ctx.control_plane(client)
            report.states.append(RunState.REMOTE_INVOKING)
            tasks = [
                asyncio.create_task(self._invoke(control_plane, manifest.service_name, test))
                for test in tests
            ]
            report.states.append(RunState.DRAINING)
            report.outcomes.extend(await asyncio.gather(*tasks))
