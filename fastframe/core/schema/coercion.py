"""String-to-type coercion for query, path and body values.

Query strings and path segments always arrive as text; before validating them
against a schema we convert each value to the type the schema declares for it.
Values that do not look like the declared type are returned untouched so the
validator can report them.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

_INT_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def to_integer(value: Any) -> Any:
    if isinstance(value, str) and _INT_RE.match(value.strip()):
        return int(value.strip(), 10)
    return value


def to_number(value: Any) -> Any:
    if isinstance(value, str) and _NUMBER_RE.match(value.strip()):
        return float(value.strip())
    return value


def to_boolean(value: Any) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def to_date(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return value


def to_object(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        parsed = json.loads(value)
    except ValueError:
        return value
    return parsed if isinstance(parsed, dict) else value


def to_array(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value.lstrip().startswith("["):
        try:
            parsed = json.loads(value)
        except ValueError:
            return value
        if isinstance(parsed, list):
            return parsed
    # ?tag=a arrives as a scalar; ?tag=a&tag=b as a list
    return [value]


CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "integer": to_integer,
    "number": to_number,
    "boolean": to_boolean,
    "date": to_date,
    "object": to_object,
    "array": to_array,
}


def coerce_value(value: Any, schema: Any, types: Optional[Iterable[str]] = None) -> Any:
    """
    Convert `value` according to `schema["type"]`, then descend into
    `properties` / `items`.

    `types` restricts which declared types are converted (None = all). The
    input is never mutated; containers are rebuilt.
    """
    if not isinstance(schema, dict):
        return value

    allowed = None if types is None else frozenset(types)
    declared = schema.get("type")
    if isinstance(declared, str) and declared in CONVERTERS and (allowed is None or declared in allowed):
        value = CONVERTERS[declared](value)

    props = schema.get("properties")
    if isinstance(value, dict) and isinstance(props, dict):
        value = dict(value)
        for key, sub in props.items():
            if value.get(key) not in (None, ""):
                value[key] = coerce_value(value[key], sub, allowed)
    elif isinstance(value, list) and isinstance(schema.get("items"), dict):
        value = [coerce_value(item, schema["items"], allowed) for item in value]

    return value


# body values come from JSON and already carry their types, except dates
BODY_COERCED_TYPES = frozenset({"date"})


def coerce_request(fragments: Dict[str, Any], body: Any, query: Dict[str, Any], params: Dict[str, Any]):
    return (
        coerce_value(body, fragments.get("body") or {}, BODY_COERCED_TYPES),
        coerce_value(query, fragments.get("query") or {}),
        coerce_value(params, fragments.get("params") or {}),
    )
