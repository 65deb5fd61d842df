from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import APIRouter, FastAPI
from starlette.middleware.gzip import GZipMiddleware

from fastframe.api.endpoints.health import build_vitals_router, vitals_lifespan
from fastframe.api.endpoints.metrics_export import build_metrics_router
from fastframe.api.middleware.body_parser import BodyParserMiddleware
from fastframe.api.middleware.cors import OriginMatchingCORSMiddleware
from fastframe.api.middleware.error_shaping import ErrorRenderer, SafeErrorMiddleware, install_error_handlers
from fastframe.api.middleware.no_cache import NoCacheMiddleware
from fastframe.api.middleware.request_context import AccessLogMiddleware
from fastframe.api.middleware.request_id import RequestIdMiddleware
from fastframe.api.middleware.schema import RouteSchema, SchemaValidation
from fastframe.api.middleware.security_headers import SecurityHeadersMiddleware
from fastframe.api.routing import create_router, version_prefix
from fastframe.core.config import (
    CorsOptions,
    ErrorOptions,
    FrameworkOptions,
    GzipOptions,
    HelmetOptions,
    LoggerOptions,
    MetricsOptions,
    NoCacheOptions,
    ParseOptions,
    RequestIdOptions,
    SchemaOptions,
    VitalsOptions,
    current_env,
    is_development_like,
    resolve_options,
)
from fastframe.version import __version__

log = logging.getLogger("fastframe.app")


@dataclass(frozen=True)
class BundledMiddleware:
    name: str
    component: Any
    options: type

    @property
    def defaults(self):
        return self.options()


BUNDLED_MIDDLEWARE: Dict[str, BundledMiddleware] = {
    b.name: b
    for b in (
        BundledMiddleware("parse", BodyParserMiddleware, ParseOptions),
        BundledMiddleware("error", SafeErrorMiddleware, ErrorOptions),
        BundledMiddleware("request_id", RequestIdMiddleware, RequestIdOptions),
        BundledMiddleware("logger", AccessLogMiddleware, LoggerOptions),
        BundledMiddleware("gzip", GZipMiddleware, GzipOptions),
        BundledMiddleware("cors", OriginMatchingCORSMiddleware, CorsOptions),
        BundledMiddleware("helmet", SecurityHeadersMiddleware, HelmetOptions),
        BundledMiddleware("no_cache", NoCacheMiddleware, NoCacheOptions),
        BundledMiddleware("vitals", build_vitals_router, VitalsOptions),
        BundledMiddleware("schema", SchemaValidation, SchemaOptions),
        BundledMiddleware("metrics", build_metrics_router, MetricsOptions),
    )
}


class Framework(FastAPI):
    """
    FastAPI application with the bundled middleware stack installed.

    Adds a router factory (create_router / api_router / include_routers),
    request schema validation (schema) and error listeners on top of FastAPI.
    """

    version_string = __version__
    bundled_middleware = BUNDLED_MIDDLEWARE

    def __init__(self, options: FrameworkOptions, *, env: str, **fastapi_kwargs: Any):
        fastapi_kwargs.setdefault("title", options.title)
        fastapi_kwargs.setdefault("version", __version__)
        super().__init__(**fastapi_kwargs)

        self.env = env
        self.framework_options = options
        self.apis: Dict[str, APIRouter] = {}
        self.error_listeners: List[Callable[[BaseException, Any], Any]] = []
        self.vitals = None
        self._included: set[int] = set()

        mw = options.middleware
        display_errors = is_development_like(env) if mw.schema_.display_errors is None else mw.schema_.display_errors
        self._schema = SchemaValidation(mw.schema_, display_errors=display_errors)

        self._install_middleware(display_errors)
        self._install_routes()

    # ------------------------------------------------------------
    # Middleware stack (ORDER MATTERS)
    # Starlette reverses add_middleware order: the LAST call = OUTERMOST wrapper.
    # Runtime order (outermost -> innermost):
    #   RequestId -> AccessLog -> CORS -> SecurityHeaders -> NoCache
    #   -> SafeError -> GZip -> BodyParser -> handler
    # ------------------------------------------------------------
    def _install_middleware(self, display_errors: bool) -> None:
        mw = self.framework_options.middleware

        if mw.parse.enabled:
            self.add_middleware(
                BodyParserMiddleware,
                parser=mw.parse.parser,
                limit=mw.parse.limit,
                form_limit=mw.parse.form_limit,
            )

        if mw.gzip.enabled:
            self.add_middleware(GZipMiddleware, minimum_size=mw.gzip.minimum_size, compresslevel=mw.gzip.compresslevel)
        else:
            log.warning("gzip middleware disabled. It will be enabled by default in next major release")

        if mw.error.enabled:
            renderer = ErrorRenderer(
                env=self.env,
                handler=mw.error.handler,
                listeners=self.error_listeners,
                display_errors=display_errors,
            )
            install_error_handlers(self, renderer)
            self.add_middleware(SafeErrorMiddleware, renderer=renderer, request_id_header=mw.request_id.key)

        if mw.no_cache.enabled:
            self.add_middleware(
                NoCacheMiddleware,
                global_=mw.no_cache.global_,
                paths=mw.no_cache.paths,
                types=mw.no_cache.types,
            )

        if mw.helmet.enabled:
            individual = mw.helmet.model_dump(exclude={"enabled", "default"}, exclude_none=True)
            self.add_middleware(SecurityHeadersMiddleware, default=mw.helmet.default, options=individual)

        if mw.cors.enabled and mw.cors.origin is not False:
            self.add_middleware(
                OriginMatchingCORSMiddleware,
                origin=mw.cors.origin,
                credentials=mw.cors.credentials,
                methods=mw.cors.methods,
                headers=mw.cors.headers,
                expose=mw.cors.expose,
                max_age=mw.cors.max_age,
            )

        if mw.logger.enabled:
            self.add_middleware(AccessLogMiddleware, name=mw.logger.name, logger=mw.logger.logger)
        else:
            log.warning("logger middleware disabled. It will be enabled by default in next major release")

        if mw.request_id.enabled:
            self.add_middleware(
                RequestIdMiddleware,
                key=mw.request_id.key,
                no_hyphen=mw.request_id.no_hyphen,
                inject=mw.request_id.inject,
            )

    def _install_routes(self) -> None:
        mw = self.framework_options.middleware
        if mw.vitals.enabled:
            router, self.vitals = build_vitals_router(mw.vitals)
            self.include_router(router)
            self.router.lifespan_context = vitals_lifespan(self.vitals, self.router.lifespan_context)
        if mw.metrics.enabled:
            self.include_router(build_metrics_router(mw.metrics.path))

    # ------------------------------------------------------------
    # Router factory
    # ------------------------------------------------------------
    def create_router(self, prefix: str = "", **kwargs: Any) -> APIRouter:
        return create_router(prefix, **kwargs)

    def api_router(self, version: str, **kwargs: Any) -> APIRouter:
        """Router namespaced under /<version>; include it with include_routers()."""
        prefix = version_prefix(version)
        router = self.apis.get(prefix.lstrip("/"))
        if router is None:
            router = self.apis[prefix.lstrip("/")] = create_router(prefix, **kwargs)
        return router

    def include_routers(self, *routers: APIRouter) -> "Framework":
        """
        Mount routers. With no arguments, mounts every api_router() not yet mounted.

        Routes must be registered on a router before it is mounted.
        """
        for router in routers or tuple(self.apis.values()):
            if id(router) in self._included:
                continue
            self.include_router(router)
            self._included.add(id(router))
        return self

    # ------------------------------------------------------------
    # Validation + errors
    # ------------------------------------------------------------
    def schema(self, schema: Optional[RouteSchema] = None, **route_opts: Any) -> Callable:
        """
        Request validation dependency:

            @router.get("/a/{a}")
            async def handler(data: ValidatedRequest = Depends(app.schema({"params": {...}}))): ...
        """
        return self._schema(schema, **route_opts)

    def add_error_listener(self, listener: Callable[[BaseException, Any], Any]) -> None:
        self.error_listeners.append(listener)

    def listen(self, port: Union[int, str], host: str = "127.0.0.1", **uvicorn_kwargs: Any) -> None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError("Port number must be between 1 and 65535") from None
        if not 1 <= port <= 65535:
            raise ValueError("Port number must be between 1 and 65535")

        import uvicorn

        log.info("App server listening on %s:%d", host, port)
        uvicorn.run(self, host=host, port=port, **uvicorn_kwargs)


def create_app(
    options: Union[None, Dict[str, Any], FrameworkOptions] = None,
    *,
    env: Optional[str] = None,
    **fastapi_kwargs: Any,
) -> Framework:
    return Framework(resolve_options(options), env=(env or current_env()).strip().lower(), **fastapi_kwargs)
