"""Service schema normalization.

Turns the loosely-typed `config.json` written by service authors into a strict
`ServiceSchema`. The `required` flag is accepted either as a JSON boolean or as a
"True"/"False" string (Python services serialize it that way); it is reduced to a
plain `bool` here and never travels further in its raw form.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from core.domain.models import ParameterDescriptor, ServiceInputParams, ServiceSchema
from core.errors import ConfigError, SchemaError

log = logging.getLogger(__name__)

_INPUT_GROUPS = ("path", "query", "body")
_TRUE_LITERAL = "true"
_FALSE_LITERAL = "false"


def parse_required_flag(value: Any, *, param: str) -> bool:
    """Resolve a `required` value to a boolean.

    Accepts `True`/`False` and the strings "true"/"false" in any letter case.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == _TRUE_LITERAL:
            return True
        if lowered == _FALSE_LITERAL:
            return False
    raise SchemaError(
        f"Parameter '{param}' has an invalid 'required' value {value!r}; "
        "expected a boolean or \"True\"/\"False\".",
        field=param,
        value=value,
    )


def _parse_param(raw: Any, *, location: str) -> ParameterDescriptor:
    if not isinstance(raw, dict):
        raise SchemaError(f"Expected an object in '{location}', found {raw!r}.", field=location, value=raw)

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise SchemaError(
            f"Parameter in '{location}' is missing a non-empty 'name': {raw!r}.",
            field=location,
            value=raw,
        )

    dtype = raw.get("dtype")
    if not isinstance(dtype, str) or not dtype.strip():
        raise SchemaError(
            f"Parameter '{name}' in '{location}' is missing a 'dtype' string.",
            field=name,
            value=dtype,
        )

    if "required" not in raw:
        raise SchemaError(f"Parameter '{name}' in '{location}' is missing 'required'.", field=name)

    return ParameterDescriptor(
        name=name,
        dtype=dtype.strip(),
        required=parse_required_flag(raw["required"], param=name),
    )


def _parse_param_list(raw: Any, *, location: str) -> list[ParameterDescriptor]:
    if not isinstance(raw, list):
        raise SchemaError(f"Expected an array for '{location}', found {raw!r}.", field=location, value=raw)
    return [_parse_param(item, location=location) for item in raw]


def _parse_outputs(raw: Any) -> dict[str, ParameterDescriptor]:
    outputs: dict[str, ParameterDescriptor] = {}
    for param in _parse_param_list(raw, location="output"):
        if param.name in outputs:
            # Last write wins; earlier declarations are dropped.
            log.warning("Duplicate output parameter '%s'; keeping the last declaration", param.name)
        outputs[param.name] = param
    return outputs


def parse_service_schema(text: str) -> ServiceSchema:
    """Normalize a schema JSON document into a `ServiceSchema`.

    Raises `SchemaError` naming the offending field for any malformed input.
    """

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Service schema is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise SchemaError("Service schema must be a JSON object.", value=data)

    if "input" not in data:
        raise SchemaError("Service schema is missing the 'input' field.", field="input")
    if "output" not in data:
        raise SchemaError("Service schema is missing the 'output' field.", field="output")

    raw_input = data["input"]
    if not isinstance(raw_input, dict):
        raise SchemaError(f"'input' must be an object, found {raw_input!r}.", field="input", value=raw_input)

    groups: dict[str, list[ParameterDescriptor] | None] = {}
    for group in _INPUT_GROUPS:
        raw_group = raw_input.get(group)
        groups[group] = None if raw_group is None else _parse_param_list(raw_group, location=f"input.{group}")

    schema = ServiceSchema(
        input=ServiceInputParams(**groups),
        output=_parse_outputs(data["output"]),
    )
    log.debug("Normalized service schema: %s", schema)
    return schema


def load_service_schema(path: Path) -> ServiceSchema:
    """Read and normalize the schema file at `path`."""

    if not path.is_file():
        raise ConfigError(f"Service schema file not found: {path}")
    log.info("Reading service schema %s", path)
    return parse_service_schema(path.read_text(encoding="utf-8"))
