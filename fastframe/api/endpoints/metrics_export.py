"""Prometheus scrape route.

Mounted by create_app when `middleware.metrics.enabled` is set. Serves the
default registry, which holds the request counters recorded by the access
logger and the schema validation failure counter.
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest


def build_metrics_router(path: str = "/metrics", registry=REGISTRY) -> APIRouter:
    router = APIRouter()

    @router.get(path, include_in_schema=False)
    def prometheus_metrics() -> Response:
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return router
