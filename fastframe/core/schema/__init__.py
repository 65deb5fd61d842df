from .builder import REQUEST_PARTS, build_request_schema
from .coercion import coerce_request, coerce_value
from .validator import RequestValidator, validate_instance

__all__ = [
    "REQUEST_PARTS",
    "RequestValidator",
    "build_request_schema",
    "coerce_request",
    "coerce_value",
    "validate_instance",
]
