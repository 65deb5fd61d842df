from __future__ import annotations

import copy
import json
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ERROR_ENVS: tuple[str, ...] = ("development", "dev", "test", "testing")


def current_env() -> str:
    return (os.getenv("FASTFRAME_ENV") or "development").strip().lower()


def is_development_like(env: Optional[str] = None) -> bool:
    return (env or current_env()) in DEFAULT_ERROR_ENVS


def deep_merge(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Recursively merge `override` into a copy of `base`.

    Nested dicts merge key by key; any other value (lists included) replaces
    the value in `base`. Neither argument is mutated.
    """
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


# ------------------------------------------------------------
# Per-middleware options
# ------------------------------------------------------------
class _Options(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True, extra="forbid")

    enabled: bool = True


class ParseOptions(_Options):
    # parser(raw_bytes, content_type) -> parsed body
    parser: Optional[Callable[[bytes, str], Any]] = None
    limit: Union[str, int] = "1mb"
    form_limit: Union[str, int] = "56kb"


class ErrorOptions(_Options):
    # handler(request, exc) -> Response
    handler: Optional[Callable[..., Any]] = None


class RequestIdOptions(_Options):
    key: str = "X-Request-Id"
    no_hyphen: bool = False
    inject: bool = True


class LoggerOptions(_Options):
    enabled: bool = False
    name: str = "fastframe.access"
    logger: Optional[Any] = None


class GzipOptions(_Options):
    enabled: bool = False
    minimum_size: int = Field(default=500, ge=0)
    compresslevel: int = Field(default=9, ge=1, le=9)


class CorsOptions(_Options):
    enabled: bool = False
    # bool | str | re.Pattern | list of str and re.Pattern
    origin: Any = True
    credentials: bool = False
    methods: List[str] = Field(default_factory=lambda: ["GET", "HEAD", "PUT", "POST", "DELETE", "PATCH"])
    headers: List[str] = Field(default_factory=lambda: ["*"])
    expose: List[str] = Field(default_factory=list)
    max_age: int = 600

    @field_validator("origin", mode="before")
    @classmethod
    def _check_origin(cls, v: Any) -> Any:
        if isinstance(v, (bool, str, re.Pattern)):
            return v
        if isinstance(v, (list, tuple)):
            for item in v:
                if not isinstance(item, (str, re.Pattern)):
                    raise ValueError(f"Unknown origin config type - {item!r}")
            return list(v)
        raise ValueError(f"Unknown origin config type - {v!r}")


class HelmetOptions(_Options):
    enabled: bool = False
    default: bool = False
    dns_prefetch_control: Optional[Dict[str, Any]] = None
    frameguard: Optional[Union[str, Dict[str, Any]]] = None
    hsts: Optional[Dict[str, Any]] = None
    ie_no_open: Optional[bool] = None
    no_sniff: Optional[bool] = None
    xss_filter: Optional[bool] = None
    referrer_policy: Optional[Union[str, Dict[str, Any]]] = None
    content_security_policy: Optional[Dict[str, Any]] = None


class NoCacheOptions(_Options):
    enabled: bool = False
    global_: bool = Field(default=False, alias="global")
    paths: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)


DEFAULT_UNHEALTHY_WHEN: Dict[str, Dict[str, Dict[str, Any]]] = {
    "cpu": {"usage": {"greater_than": 80}},
    "tick": {"max_ms": {"greater_than": 500}},
    "mem": {},
}


class VitalsOptions(_Options):
    enabled: bool = False
    path: str = "/health"
    secret: Optional[str] = None
    public: List[str] = Field(default_factory=lambda: ["healthy"])
    unhealthy_when: Dict[str, Dict[str, Dict[str, Any]]] = Field(
        default_factory=lambda: copy.deepcopy(DEFAULT_UNHEALTHY_WHEN)
    )
    # pre-built fastframe.core.vitals.Vitals instance
    vitals: Optional[Any] = None

    @field_validator("unhealthy_when", mode="before")
    @classmethod
    def _merge_unhealthy_when(cls, v: Any) -> Any:
        return deep_merge(DEFAULT_UNHEALTHY_WHEN, v or {})


class SchemaOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    # jsonschema validator class; Draft 3 + `date` type when None
    validator: Optional[Any] = None
    coerce_types: bool = True
    # None -> resolved from the app environment
    display_errors: Optional[bool] = None
    strict: bool = True


class MetricsOptions(_Options):
    enabled: bool = False
    path: str = "/metrics"


class MiddlewareOptions(BaseModel):
    parse: ParseOptions = Field(default_factory=ParseOptions)
    error: ErrorOptions = Field(default_factory=ErrorOptions)
    request_id: RequestIdOptions = Field(default_factory=RequestIdOptions)
    logger: LoggerOptions = Field(default_factory=LoggerOptions)
    gzip: GzipOptions = Field(default_factory=GzipOptions)
    cors: CorsOptions = Field(default_factory=CorsOptions)
    helmet: HelmetOptions = Field(default_factory=HelmetOptions)
    no_cache: NoCacheOptions = Field(default_factory=NoCacheOptions)
    vitals: VitalsOptions = Field(default_factory=VitalsOptions)
    schema_: SchemaOptions = Field(default_factory=SchemaOptions, alias="schema")
    metrics: MetricsOptions = Field(default_factory=MetricsOptions)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class FrameworkOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = "fastframe"
    middleware: MiddlewareOptions = Field(default_factory=MiddlewareOptions)


def resolve_options(options: Union[None, Dict[str, Any], FrameworkOptions]) -> FrameworkOptions:
    if options is None:
        return FrameworkOptions()
    if isinstance(options, FrameworkOptions):
        return options
    return FrameworkOptions.model_validate(options)


def load_options(path: Union[str, Path]) -> FrameworkOptions:
    """
    Load framework options from a YAML (.yaml/.yml) or JSON file.

    Only plain data is expressible in a file; callables (custom parsers,
    error handlers) and regex origins must be passed in code.
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"Options file must contain a mapping: {p}")
    return FrameworkOptions.model_validate(data)


_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}


def parse_size(value: Union[str, int]) -> int:
    """'1mb' -> 1048576, '56kb' -> 57344, 100 -> 100."""
    if isinstance(value, int):
        return value
    m = _SIZE_RE.match(value or "")
    if not m:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = m.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "b").lower()])
