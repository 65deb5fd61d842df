from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from jsonschema import Draft3Validator, validators
from jsonschema.exceptions import ValidationError

# Draft 3 keeps property-level `required: true`, which route schemas rely on.
_type_checker = Draft3Validator.TYPE_CHECKER.redefine(
    "date", lambda _checker, instance: isinstance(instance, (datetime, date))
)
RequestValidator = validators.extend(Draft3Validator, type_checker=_type_checker)

# Keywords a schema may carry that are not validators themselves.
_ANNOTATION_KEYWORDS = frozenset(
    {"$schema", "id", "title", "description", "default", "required", "exclusiveMinimum", "exclusiveMaximum"}
)
_SUBSCHEMA_MAPS = ("properties", "patternProperties")
_SUBSCHEMA_SINGLE_OR_LIST = ("items", "extends")
_SUBSCHEMA_SINGLE = ("additionalProperties", "additionalItems")


def known_keywords(validator_cls: Any) -> frozenset:
    return frozenset(getattr(validator_cls, "VALIDATORS", {})) | _ANNOTATION_KEYWORDS


def find_unknown_keywords(schema: Any, known: Iterable[str], path: str = "#") -> List[str]:
    """Return JSON-pointer-ish locations of keywords the validator does not understand."""
    known = frozenset(known)
    found: List[str] = []
    if not isinstance(schema, dict):
        return found

    for key, value in schema.items():
        if key not in known:
            found.append(f"{path}/{key}")
            continue
        if key in _SUBSCHEMA_MAPS and isinstance(value, dict):
            for name, sub in value.items():
                found.extend(find_unknown_keywords(sub, known, f"{path}/{key}/{name}"))
        elif key in _SUBSCHEMA_SINGLE_OR_LIST:
            subs = value if isinstance(value, list) else [value]
            for i, sub in enumerate(subs):
                found.extend(find_unknown_keywords(sub, known, f"{path}/{key}/{i}"))
        elif key in _SUBSCHEMA_SINGLE:
            found.extend(find_unknown_keywords(value, known, f"{path}/{key}"))
        elif key == "dependencies" and isinstance(value, dict):
            for name, sub in value.items():
                found.extend(find_unknown_keywords(sub, known, f"{path}/{key}/{name}"))
    return found


def format_property(path: Iterable[Any], root: str = "request") -> str:
    out = root
    for part in path:
        out += f"[{part}]" if isinstance(part, int) else f".{part}"
    return out


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return value


def serialize_error(error: ValidationError, root: str = "request") -> Dict[str, Any]:
    prop = format_property(error.absolute_path, root)
    return {
        "property": prop,
        "message": error.message,
        "name": error.validator,
        "argument": _jsonable(error.validator_value),
        "stack": f"{prop} {error.message}",
    }


def validate_instance(validator_cls: Any, schema: Dict[str, Any], instance: Any, root: str = "request") -> List[Dict[str, Any]]:
    validator = validator_cls(schema)
    return [serialize_error(e, root) for e in validator.iter_errors(instance)]
