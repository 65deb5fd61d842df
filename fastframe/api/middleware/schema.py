from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from fastapi import Request

from fastframe.api.middleware.body_parser import get_body
from fastframe.api.observability.metrics import VALIDATION_FAILURES_TOTAL, normalize_path
from fastframe.core.config import SchemaOptions
from fastframe.core.errors import INVALID_PARAMS_ERROR_MSG, HttpError, SchemaDefinitionError
from fastframe.core.schema.builder import assert_schema_definition, build_request_schema
from fastframe.core.schema.coercion import coerce_request
from fastframe.core.schema.validator import (
    RequestValidator,
    find_unknown_keywords,
    known_keywords,
    validate_instance,
)

log = logging.getLogger("fastframe.schema")

VALIDATED_STATE_KEY = "validated"

RouteSchema = Union[Dict[str, Any], Callable[[Request], Dict[str, Any]]]


@dataclass
class ValidatedRequest:
    body: Any = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)


def query_dict(request: Request) -> Dict[str, Any]:
    """Query string as a dict; repeated keys become lists."""
    out: Dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in out:
            prev = out[key]
            out[key] = prev + [value] if isinstance(prev, list) else [prev, value]
        else:
            out[key] = value
    return out


async def _current_inputs(request: Request) -> ValidatedRequest:
    # stacked schema dependencies see the values coerced by the previous one
    previous = getattr(request.state, VALIDATED_STATE_KEY, None)
    if isinstance(previous, ValidatedRequest):
        return previous
    return ValidatedRequest(
        body=await get_body(request),
        query=query_dict(request),
        params=dict(request.path_params),
    )


class SchemaValidation:
    """
    Factory for per-route request validation dependencies.

    App-wide defaults come from SchemaOptions; per-route keyword options
    (strict, coerce_types, display_errors, validator) override them.
    """

    def __init__(self, options: SchemaOptions, *, display_errors: bool):
        self.options = options
        self.display_errors = display_errors if options.display_errors is None else options.display_errors

    def __call__(self, schema: Optional[RouteSchema] = None, **route_opts: Any) -> Callable:
        unknown_opts = set(route_opts) - {"strict", "coerce_types", "display_errors", "validator"}
        if unknown_opts:
            raise TypeError(f"Unknown schema options: {sorted(unknown_opts)}")

        strict = route_opts.get("strict", self.options.strict)
        coerce_types = route_opts.get("coerce_types", self.options.coerce_types)
        display_errors = route_opts.get("display_errors", self.display_errors)
        validator_cls = route_opts.get("validator") or self.options.validator or RequestValidator
        known = known_keywords(validator_cls)

        def compile_schema(fragments: Any) -> Dict[str, Any]:
            composite = build_request_schema(fragments, strict=strict)
            if strict:
                unknown = find_unknown_keywords(composite, known)
                if unknown:
                    raise SchemaDefinitionError(f"Unknown schema keywords: {', '.join(unknown)}")
            return composite

        if callable(schema) and not isinstance(schema, dict):
            static_fragments = None
            static_schema = None
        else:
            assert_schema_definition(schema)
            static_fragments = schema
            static_schema = compile_schema(schema)

        async def validate_request(request: Request) -> ValidatedRequest:
            if static_schema is not None:
                fragments, composite = static_fragments, static_schema
            else:
                fragments = schema(request)
                composite = compile_schema(fragments)

            current = await _current_inputs(request)
            body, query, params = current.body, current.query, current.params
            if coerce_types:
                body, query, params = coerce_request(fragments, body, query, params)

            errors = validate_instance(
                validator_cls,
                composite,
                {"body": body, "query": query, "params": params},
            )
            if errors:
                VALIDATION_FAILURES_TOTAL.labels(
                    method=request.method.upper(), path=normalize_path(request.url.path)
                ).inc()
                log.info("validation failed method=%s path=%s errors=%d", request.method, request.url.path, len(errors))
                raise HttpError(
                    400,
                    INVALID_PARAMS_ERROR_MSG,
                    details={"validationErrors": errors if display_errors else None},
                    expose=True,
                )

            validated = ValidatedRequest(body=body, query=query, params=params)
            setattr(request.state, VALIDATED_STATE_KEY, validated)
            return validated

        return validate_request
