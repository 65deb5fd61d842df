import json

import pytest
from fastapi import Depends

from fastframe.api.middleware.schema import ValidatedRequest
from fastframe.core.errors import SchemaDefinitionError

ENUM_SCHEMA = {"params": {"properties": {"a": {"enum": ["x", "y"]}}}}

TYPED_SCHEMA = {
    "params": {"properties": {"i": {"type": "integer"}}},
    "query": {
        "properties": {
            "n": {"type": "number"},
            "b": {"type": "boolean"},
            "d": {"type": "date"},
            "o": {"type": "object", "properties": {"k": {"type": "integer"}}},
            "tags": {"type": "array", "items": {"type": "integer"}},
        }
    },
}


def _routes(app):
    @app.get("/enum/{a}")
    def enum_route(data: ValidatedRequest = Depends(app.schema(ENUM_SCHEMA))):
        return data.params

    @app.get("/typed/{i}")
    def typed(data: ValidatedRequest = Depends(app.schema(TYPED_SCHEMA))):
        q = data.query
        return {
            "i": data.params["i"],
            "n": q.get("n"),
            "b": q.get("b"),
            "d": q["d"].isoformat() if "d" in q else None,
            "o": q.get("o"),
            "tags": q.get("tags"),
        }

    @app.get("/raw/{i}")
    def raw(data: ValidatedRequest = Depends(app.schema(TYPED_SCHEMA, coerce_types=False))):
        return data.params

    @app.post("/closed/{p}")
    def closed(data: ValidatedRequest = Depends(app.schema({"body": {}, "query": {}, "params": {}}))):
        return {}

    @app.get("/open")
    def open_query(data: ValidatedRequest = Depends(app.schema({"query": {}}, strict=False))):
        return data.query

    @app.get("/override")
    def override(data: ValidatedRequest = Depends(app.schema({"query": {"additionalProperties": True}}))):
        return data.query

    @app.get("/quiet/{a}")
    def quiet(data: ValidatedRequest = Depends(app.schema(ENUM_SCHEMA, display_errors=False))):
        return data.params

    @app.post("/people")
    def people(
        data: ValidatedRequest = Depends(
            app.schema(
                {
                    "body": {
                        "properties": {
                            "name": {"type": "string", "required": True},
                            "born": {"type": "date"},
                            "age": {"type": "integer"},
                        }
                    }
                }
            )
        ),
    ):
        born = data.body.get("born")
        return {"name": data.body["name"], "born": born.isoformat() if born else None}


def test_enum_param_ok(make_client):
    c = make_client(routes=_routes)
    r = c.get("/enum/x")
    assert r.status_code == 200
    assert r.json() == {"a": "x"}


def test_enum_param_error_shape(make_client):
    c = make_client(routes=_routes)
    r = c.get("/enum/z")
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid request parameters"
    errors = body["details"]["validationErrors"]
    assert len(errors) == 1
    err = errors[0]
    assert err["property"] == "request.params.a"
    assert err["name"] == "enum"
    assert err["argument"] == ["x", "y"]
    assert err["stack"] == f"request.params.a {err['message']}"


def test_types_are_coerced(make_client):
    c = make_client(routes=_routes)
    r = c.get(
        "/typed/12",
        params=[
            ("n", "1.5"),
            ("b", "true"),
            ("d", "2020-01-02T03:04:05Z"),
            ("o", json.dumps({"k": "7"})),
            ("tags", "1"),
            ("tags", "2"),
        ],
    )
    assert r.status_code == 200, r.text
    assert r.json() == {
        "i": 12,
        "n": 1.5,
        "b": True,
        "d": "2020-01-02T03:04:05+00:00",
        "o": {"k": 7},
        "tags": [1, 2],
    }


def test_single_value_for_array_is_wrapped(make_client):
    c = make_client(routes=_routes)
    r = c.get("/typed/1", params={"tags": "5"})
    assert r.json()["tags"] == [5]


@pytest.mark.parametrize(
    "path,params,prop",
    [
        ("/typed/abc", {}, "request.params.i"),
        ("/typed/1", {"n": "one"}, "request.query.n"),
        ("/typed/1", {"b": "yes"}, "request.query.b"),
        ("/typed/1", {"d": "yesterday"}, "request.query.d"),
        ("/typed/1", {"o": "[1]"}, "request.query.o"),
    ],
)
def test_unconvertible_values_fail_validation(make_client, path, params, prop):
    c = make_client(routes=_routes)
    r = c.get(path, params=params)
    assert r.status_code == 400
    props = [e["property"] for e in r.json()["details"]["validationErrors"]]
    assert prop in props


def test_coercion_can_be_disabled_per_route(make_client):
    c = make_client(routes=_routes)
    r = c.get("/raw/12")
    assert r.status_code == 400
    assert r.json()["details"]["validationErrors"][0]["property"] == "request.params.i"


def test_coercion_can_be_disabled_app_wide(make_client):
    c = make_client({"middleware": {"schema": {"coerce_types": False}}}, routes=_routes)
    assert c.get("/typed/12").status_code == 400


def test_strict_rejects_additional_properties_in_every_part(make_client):
    c = make_client(routes=_routes)
    r = c.post("/closed/1", params={"q": "1"}, json={"b": 1})
    assert r.status_code == 400
    errors = r.json()["details"]["validationErrors"]
    assert len(errors) == 3
    assert {e["property"] for e in errors} == {"request.body", "request.query", "request.params"}
    assert {e["name"] for e in errors} == {"additionalProperties"}


def test_non_strict_allows_additional_properties(make_client):
    c = make_client(routes=_routes)
    assert c.get("/open", params={"anything": "1"}).json() == {"anything": "1"}


def test_non_strict_app_wide(make_client):
    c = make_client({"middleware": {"schema": {"strict": False}}}, routes=_routes)
    assert c.post("/closed/1", params={"q": "1"}, json={"b": 1}).status_code == 200


def test_fragment_additional_properties_overrides_strict(make_client):
    c = make_client(routes=_routes)
    assert c.get("/override", params={"x": "1"}).json() == {"x": "1"}


def test_display_errors_false_hides_errors(make_client):
    c = make_client(routes=_routes)
    r = c.get("/quiet/z")
    assert r.status_code == 400
    assert r.json()["details"] == {"validationErrors": None}


def test_display_errors_follow_environment(make_client):
    c = make_client(env="production", routes=_routes)
    r = c.get("/enum/z")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid request parameters", "details": {"validationErrors": None}}


def test_display_errors_forced_on_in_production(make_client):
    c = make_client({"middleware": {"schema": {"display_errors": True}}}, env="production", routes=_routes)
    r = c.get("/enum/z")
    assert r.json()["details"]["validationErrors"][0]["property"] == "request.params.a"


def test_body_required_property_and_date(make_client):
    c = make_client(routes=_routes)
    ok = c.post("/people", json={"name": "Ada", "born": "1815-12-10"})
    assert ok.status_code == 200
    assert ok.json() == {"name": "Ada", "born": "1815-12-10T00:00:00"}

    missing = c.post("/people", json={"born": "1815-12-10"})
    assert missing.status_code == 400
    assert missing.json()["details"]["validationErrors"][0]["name"] == "required"


def test_body_numbers_are_not_coerced(make_client):
    c = make_client(routes=_routes)
    r = c.post("/people", json={"name": "Ada", "age": "36"})
    assert r.status_code == 400
    assert r.json()["details"]["validationErrors"][0]["property"] == "request.body.age"


def test_validation_error_as_html(make_client):
    c = make_client(routes=_routes)
    r = c.get("/enum/z", headers={"Accept": "text/html"})
    assert r.status_code == 400
    assert r.headers["content-type"].startswith("text/html")
    assert "Invalid request parameters" in r.text
    assert "request.params.a" in r.text


def test_stacked_schemas_see_coerced_values(make_client):
    def routes(app):
        first = app.schema({"params": {"properties": {"i": {"type": "integer"}}}})
        second = app.schema({"params": {"properties": {"i": {"type": "integer", "minimum": 5}}}}, coerce_types=False)

        @app.get("/stacked/{i}", dependencies=[Depends(first)])
        def stacked(data: ValidatedRequest = Depends(second)):
            return data.params

    c = make_client(routes=routes)
    assert c.get("/stacked/7").json() == {"i": 7}
    r = c.get("/stacked/3")
    assert r.status_code == 400
    assert r.json()["details"]["validationErrors"][0]["name"] == "minimum"


def test_callable_schema_built_per_request(make_client):
    def schema_for(request):
        allowed = request.headers.get("X-Allowed", "a").split(",")
        return {"query": {"properties": {"mode": {"enum": allowed}}}}

    def routes(app):
        @app.get("/dynamic")
        def dynamic(data: ValidatedRequest = Depends(app.schema(schema_for))):
            return data.query

    c = make_client(routes=routes)
    assert c.get("/dynamic", params={"mode": "a"}).status_code == 200
    assert c.get("/dynamic", params={"mode": "b"}).status_code == 400
    assert c.get("/dynamic", params={"mode": "b"}, headers={"X-Allowed": "a,b"}).status_code == 200


def test_unknown_keyword_rejected_at_definition(app):
    with pytest.raises(SchemaDefinitionError, match="typo"):
        app.schema({"query": {"properties": {"a": {"typo": 1}}}})


def test_unknown_keyword_allowed_when_not_strict(app):
    assert callable(app.schema({"query": {"properties": {"a": {"typo": 1}}}}, strict=False))


def test_unknown_keyword_in_callable_schema_is_500(make_client):
    def routes(app):
        @app.get("/broken")
        def broken(data: ValidatedRequest = Depends(app.schema(lambda request: {"query": {"bogus": True}}))):
            return {}

    c = make_client(routes=routes)
    r = c.get("/broken")
    assert r.status_code == 500
    assert "Unknown schema keywords" in r.json()["error"]


@pytest.mark.parametrize("schema", [None, {}, {"query": None}, {"headers": {}}, "query"])
def test_missing_or_invalid_schema(app, schema):
    with pytest.raises(SchemaDefinitionError, match="Missing/invalid schema"):
        app.schema(schema)


def test_unknown_route_option(app):
    with pytest.raises(TypeError):
        app.schema(ENUM_SCHEMA, coerce=True)
