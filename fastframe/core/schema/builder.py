from __future__ import annotations

from typing import Any, Dict

from fastframe.core.config import deep_merge
from fastframe.core.errors import SchemaDefinitionError

REQUEST_PARTS: tuple[str, ...] = ("body", "query", "params")


def assert_schema_definition(schema: Any) -> None:
    if not isinstance(schema, dict) or not any(schema.get(part) is not None for part in REQUEST_PARTS):
        raise SchemaDefinitionError("Missing/invalid schema")

    unknown = sorted(k for k in schema if k not in REQUEST_PARTS)
    if unknown:
        raise SchemaDefinitionError(f"Missing/invalid schema: unknown request parts {unknown}")


def build_request_schema(schema: Dict[str, Any], strict: bool = True) -> Dict[str, Any]:
    """
    Compose one object schema over {body, query, params} from per-part fragments.

    Each present fragment is merged over an object base that is required and,
    in strict mode, closed to additional properties. A fragment's own
    `additionalProperties` wins over `strict`.
    """
    assert_schema_definition(schema)

    base = {"type": "object", "required": True, "additionalProperties": not strict}
    composite: Dict[str, Any] = {"type": "object", "required": True, "properties": {}}
    for part in REQUEST_PARTS:
        fragment = schema.get(part)
        if fragment is None:
            continue
        if not isinstance(fragment, dict):
            raise SchemaDefinitionError(f"Missing/invalid schema: '{part}' must be a mapping")
        composite["properties"][part] = deep_merge(base, fragment)
    return composite
