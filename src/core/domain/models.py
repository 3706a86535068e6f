"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation and self-documenting fields (Field) without coupling the
  core to I/O libraries.
- `model_dump(mode="json")` gives the exact wire shape the control plane expects.

Note:
- These models describe *what* a service is, not *how* it is built or deployed.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, StrictFloat, StrictInt
from pydantic.config import ConfigDict


class ParameterDescriptor(BaseModel):
    """A named, typed, required/optional field of a service contract."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Parameter name, unique within its group.",
    )
    dtype: str = Field(
        ...,
        min_length=1,
        description="Declared type (string, int, float, ...).",
    )
    required: bool = Field(
        ...,
        strict=True,
        description="Whether callers must provide the parameter.",
    )


class ServiceInputParams(BaseModel):
    """Input contract, grouped by where each parameter travels."""

    model_config = ConfigDict(frozen=True)

    path: list[ParameterDescriptor] | None = Field(
        default=None,
        description="URL path parameters, in declaration order.",
    )
    query: list[ParameterDescriptor] | None = Field(
        default=None,
        description="Query-string parameters, in declaration order.",
    )
    body: list[ParameterDescriptor] | None = Field(
        default=None,
        description="JSON body parameters, in declaration order.",
    )


class ServiceSchema(BaseModel):
    """Normalized service schema: input groups plus name-keyed outputs."""

    model_config = ConfigDict(frozen=True)

    input: ServiceInputParams = Field(default_factory=ServiceInputParams)
    output: dict[str, ParameterDescriptor] = Field(default_factory=dict)

    def body_params(self) -> list[ParameterDescriptor]:
        return list(self.input.body or [])


class ResourceSpec(BaseModel):
    """Raw resource block of the manifest, before conversion to quantities."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    cpu_limit: StrictInt | StrictFloat | str | None = Field(
        default=None,
        description="CPU cores (or millicores as a string, e.g. '500m').",
    )
    gpu_limit: StrictInt | StrictFloat | str | None = Field(
        default=None,
        description="GPU count; absent means no GPU.",
    )
    memory_limit: StrictInt | StrictFloat | str = Field(
        ...,
        description="Memory in Mi (integer) or as a quantity string ('2Gi').",
    )
    concurrent_jobs: int = Field(
        ...,
        ge=1,
        description="Concurrent jobs available per replica.",
    )
    arch: str = Field(
        default="amd64",
        min_length=1,
        description="Target image architecture (amd64 or arm64).",
    )
    replicas: int | None = Field(
        default=None,
        ge=1,
        description="Replicas requested; defaults to 1 at deploy time.",
    )


class ServiceManifest(BaseModel):
    """Declarative service description loaded from the manifest file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    service_name: str = Field(
        ...,
        alias="service",
        min_length=1,
        description="Service name, used for image tags and routing.",
    )
    stage: str | None = Field(
        default=None,
        description="Free-form stage label (dev, prod, ...).",
    )
    resources: ResourceSpec
    tests: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        alias="test",
        description="Named test fixtures, in declaration order.",
    )


class ResourceRequest(BaseModel):
    """Resource request in the control plane's quantity notation."""

    replicas: int = Field(default=1, ge=1)
    cpu_limit: str = Field(default="0")
    memory_limit: str
    use_gpu: bool = False
    gpu_limit: str = Field(default="0")
    concurrent_jobs: int = Field(..., ge=1)


class DeploymentRequest(BaseModel):
    """Body of `POST /upload_service`.

    Built fresh per deploy: `image_uri` embeds a new UUID every time.
    """

    service_name: str = Field(..., min_length=1)
    image_uri: str = Field(..., min_length=1)
    resource_request: ResourceRequest
    service_schema: ServiceSchema
    env_vars: dict[str, str] = Field(default_factory=dict)
