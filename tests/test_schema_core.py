from datetime import date, datetime, timezone

import pytest

from fastframe.core.errors import SchemaDefinitionError
from fastframe.core.schema import RequestValidator, build_request_schema, coerce_request, coerce_value
from fastframe.core.schema.coercion import to_array, to_boolean, to_date, to_integer, to_number, to_object
from fastframe.core.schema.validator import find_unknown_keywords, format_property, known_keywords, validate_instance


def test_scalar_converters():
    assert to_integer("42") == 42
    assert to_integer("-7") == -7
    assert to_integer("4.2") == "4.2"
    assert to_number("4.2") == 4.2
    assert to_number("1e3") == 1000.0
    assert to_number("abc") == "abc"
    assert to_boolean("true") is True
    assert to_boolean("false") is False
    assert to_boolean("1") == "1"
    assert to_date("2021-05-06T07:08:09Z") == datetime(2021, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    assert to_date("not a date") == "not a date"
    assert to_object('{"a": 1}') == {"a": 1}
    assert to_object("[1]") == "[1]"
    assert to_array("[1, 2]") == [1, 2]
    assert to_array("x") == ["x"]
    assert to_array(["x"]) == ["x"]


def test_coerce_value_nested_and_non_mutating():
    schema = {
        "type": "object",
        "properties": {
            "page": {"type": "integer"},
            "filter": {"type": "object", "properties": {"active": {"type": "boolean"}}},
            "ids": {"type": "array", "items": {"type": "integer"}},
            "empty": {"type": "integer"},
        },
    }
    raw = {"page": "2", "filter": '{"active": "true"}', "ids": ["1", "2"], "empty": "", "other": "5"}
    out = coerce_value(raw, schema)
    assert out == {"page": 2, "filter": {"active": True}, "ids": [1, 2], "empty": "", "other": "5"}
    assert raw["page"] == "2"


def test_coerce_value_type_filter():
    schema = {"properties": {"n": {"type": "integer"}, "d": {"type": "date"}}}
    out = coerce_value({"n": "1", "d": "2020-01-01"}, schema, types={"date"})
    assert out == {"n": "1", "d": datetime(2020, 1, 1)}


def test_coerce_request_only_converts_dates_in_body():
    fragments = {
        "body": {"properties": {"n": {"type": "integer"}, "d": {"type": "date"}}},
        "query": {"properties": {"n": {"type": "integer"}}},
        "params": {"properties": {"id": {"type": "integer"}}},
    }
    body, query, params = coerce_request(fragments, {"n": "1", "d": "2020-01-01"}, {"n": "1"}, {"id": "9"})
    assert body == {"n": "1", "d": datetime(2020, 1, 1)}
    assert query == {"n": 1}
    assert params == {"id": 9}


def test_build_request_schema_strict():
    composite = build_request_schema({"query": {"properties": {"a": {"type": "string"}}}})
    assert composite["type"] == "object"
    assert composite["required"] is True
    assert list(composite["properties"]) == ["query"]
    assert composite["properties"]["query"] == {
        "type": "object",
        "required": True,
        "additionalProperties": False,
        "properties": {"a": {"type": "string"}},
    }


def test_build_request_schema_lenient_and_override():
    composite = build_request_schema({"body": {}, "params": {"additionalProperties": False}}, strict=False)
    assert composite["properties"]["body"]["additionalProperties"] is True
    assert composite["properties"]["params"]["additionalProperties"] is False


def test_build_request_schema_rejects_bad_fragments():
    with pytest.raises(SchemaDefinitionError):
        build_request_schema({"body": "nope"})
    with pytest.raises(SchemaDefinitionError):
        build_request_schema({"cookies": {}})


def test_date_type():
    assert RequestValidator({"type": "date"}).is_valid(datetime(2020, 1, 1))
    assert RequestValidator({"type": "date"}).is_valid(date(2020, 1, 1))
    assert not RequestValidator({"type": "date"}).is_valid("2020-01-01")


def test_property_formatting():
    assert format_property(["body", "items", 0, "name"]) == "request.body.items[0].name"
    assert format_property([]) == "request"


def test_validate_instance_serializes_errors():
    schema = {"type": "object", "properties": {"when": {"type": "date"}, "n": {"minimum": 3}}}
    errors = validate_instance(RequestValidator, schema, {"when": "x", "n": 1})
    by_prop = {e["property"]: e for e in errors}
    assert by_prop["request.n"]["name"] == "minimum"
    assert by_prop["request.n"]["argument"] == 3
    assert by_prop["request.when"]["name"] == "type"
    assert by_prop["request.when"]["stack"].startswith("request.when ")


def test_unknown_keyword_detection():
    known = known_keywords(RequestValidator)
    schema = {
        "type": "object",
        "properties": {"a": {"type": "string", "minLenght": 1}},
        "items": [{"type": "integer"}, {"foo": 1}],
        "description": "documented",
    }
    assert find_unknown_keywords(schema, known) == ["#/properties/a/minLenght", "#/items/1/foo"]
