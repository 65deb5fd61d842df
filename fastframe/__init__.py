"""
fastframe: FastAPI application factory with a bundled middleware stack

- body parsing, error shaping, request ids, access logging
- CORS, security headers, no-cache, gzip
- vitals health route, Prometheus metrics
- JSON-schema request validation with type coercion
"""
from fastframe.api.factory import BUNDLED_MIDDLEWARE as bundled_middleware
from fastframe.api.factory import Framework, create_app
from fastframe.api.middleware.body_parser import get_body
from fastframe.api.middleware.request_id import get_request_id
from fastframe.api.middleware.schema import ValidatedRequest
from fastframe.core.config import FrameworkOptions, load_options
from fastframe.core.errors import HttpError
from fastframe.core.vitals import create_vitals
from fastframe.version import __version__

__all__ = [
    "Framework",
    "FrameworkOptions",
    "HttpError",
    "ValidatedRequest",
    "__version__",
    "bundled_middleware",
    "create_app",
    "create_vitals",
    "get_body",
    "get_request_id",
    "load_options",
]
