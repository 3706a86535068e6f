"""Error taxonomy for the MLX client.

Why a single module:
- Every command boundary catches `MlxError` and turns it into an exit status.
- Core services raise typed errors without knowing how the CLI renders them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class MlxError(Exception):
    """Base class for every failure the CLI reports to the user."""


class ConfigError(MlxError):
    """Missing files, unsupported architecture, missing credentials, bad manifest."""


class UnknownTestError(ConfigError):
    def __init__(self, test_name: str, available: list[str]) -> None:
        self.test_name = test_name
        self.available = available
        names = ", ".join(available) or "<none>"
        super().__init__(
            f"Test '{test_name}' not found in the manifest (available: {names}). "
            "Ensure the test name matches your local configuration."
        )


class SchemaError(MlxError):
    """The service schema could not be normalized."""

    def __init__(self, message: str, *, field: str | None = None, value: Any = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message)


@dataclass(frozen=True)
class ValidationIssue:
    """One mismatch between a test fixture and the body parameters."""

    test: str
    field: str
    message: str

    def __str__(self) -> str:
        return f"test '{self.test}', parameter '{self.field}': {self.message}"


class ValidationError(MlxError):
    """One or more test fixtures do not match the service schema."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        lines = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(f"Validation failed for {len(issues)} parameter(s):\n{lines}")


class PipelineStageError(MlxError):
    """An image pipeline stage failed; earlier stages are not retried."""

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"Image pipeline failed at stage '{stage}': {detail}")


class NetworkError(MlxError):
    """The control plane (or message queue) could not be reached."""


class RequestRejectedError(NetworkError):
    """The control plane answered with a non-2xx status."""

    def __init__(self, method: str, url: str, status_code: int, body: str) -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {url} rejected with HTTP {status_code}: {body[:500]}")
