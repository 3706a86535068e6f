import json

import pytest

from core.errors import ConfigError, SchemaError
from core.services.schema_normalizer import load_service_schema, parse_required_flag, parse_service_schema


def _schema(body=None, output=None, **extra) -> str:
    doc = {
        "input": {"path": None, "query": None, "body": body},
        "output": output if output is not None else [],
    }
    doc.update(extra)
    return json.dumps(doc)


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), (False, False), ("True", True), ("true", True), ("False", False), ("false", False)],
)
def test_required_flag_normalizes(raw, expected):
    assert parse_required_flag(raw, param="p") is expected


@pytest.mark.parametrize("raw", ["yes", "1", 1, None, "", " True ", "false\n"])
def test_required_flag_rejects_other_values(raw):
    with pytest.raises(SchemaError) as err:
        parse_required_flag(raw, param="p")
    assert err.value.field == "p"


def test_required_foo_example_normalizes_path_group():
    schema = parse_service_schema(
        '{"input":{"path":[{"name":"required_foo","dtype":"string","required":"True"}]},'
        '"output":[{"name":"foo","dtype":"string","required":"True"}]}'
    )

    (param,) = schema.input.path
    assert (param.name, param.dtype, param.required) == ("required_foo", "string", True)
    assert schema.input.query is None
    assert schema.input.body is None
    assert schema.output["foo"].required is True


def test_groups_keep_declaration_order_and_null_groups():
    body = [
        {"name": "b", "dtype": "int", "required": False},
        {"name": "a", "dtype": "string", "required": "false"},
    ]
    schema = parse_service_schema(_schema(body=body))

    assert [p.name for p in schema.body_params()] == ["b", "a"]
    assert schema.input.path is None
    assert schema.input.query is None


def test_outputs_are_keyed_by_name_last_write_wins():
    output = [
        {"name": "label", "dtype": "int", "required": True},
        {"name": "label", "dtype": "string", "required": False},
    ]
    schema = parse_service_schema(_schema(output=output))

    assert list(schema.output) == ["label"]
    assert schema.output["label"].dtype == "string"
    assert schema.output["label"].required is False


@pytest.mark.parametrize("missing", ["input", "output"])
def test_missing_top_level_field(missing):
    doc = json.loads(_schema())
    del doc[missing]

    with pytest.raises(SchemaError) as err:
        parse_service_schema(json.dumps(doc))
    assert err.value.field == missing


def test_missing_required_key_is_rejected():
    with pytest.raises(SchemaError):
        parse_service_schema(_schema(body=[{"name": "x", "dtype": "string"}]))


def test_invalid_required_value_names_the_parameter():
    with pytest.raises(SchemaError) as err:
        parse_service_schema(_schema(body=[{"name": "x", "dtype": "string", "required": "maybe"}]))
    assert err.value.field == "x"
    assert err.value.value == "maybe"


def test_rejects_non_json_and_non_object():
    with pytest.raises(SchemaError):
        parse_service_schema("{not json")
    with pytest.raises(SchemaError):
        parse_service_schema("[]")


def test_group_must_be_an_array():
    with pytest.raises(SchemaError):
        parse_service_schema(_schema(body={"name": "x"}))


def test_load_reports_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_service_schema(tmp_path / "config.json")


def test_load_reads_file(service_dir):
    schema = load_service_schema(service_dir / "config.json")

    assert [p.name for p in schema.body_params()] == ["path_image", "threshold"]
    assert schema.body_params()[0].required is True
