from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from fastframe.core.config import VitalsOptions
from fastframe.core.vitals import Vitals, create_vitals

SECRET_QUERY_PARAM = "secret"
SECRET_HEADER = "X-Vitals-Secret"


def _presented_secret(request: Request) -> Optional[str]:
    return request.query_params.get(SECRET_QUERY_PARAM) or request.headers.get(SECRET_HEADER)


def has_secret(request: Request, secret: str) -> bool:
    presented = _presented_secret(request)
    return presented is not None and hmac.compare_digest(presented.encode("utf-8"), secret.encode("utf-8"))


def build_vitals_router(opts: VitalsOptions) -> tuple[APIRouter, Vitals]:
    """
    Health route reporting process vitals.

    200 when healthy, 503 otherwise. With a secret configured, callers that
    do not present it only see the `public` fields.
    """
    vitals: Vitals = opts.vitals or create_vitals(opts.unhealthy_when)
    router = APIRouter()

    @router.api_route(opts.path, methods=["GET", "HEAD", "POST"], include_in_schema=False)
    async def vitals_report(request: Request):
        report = await vitals.report()
        status = 200 if report["healthy"] else 503

        if opts.secret and not has_secret(request, opts.secret):
            report = {k: report[k] for k in opts.public if k in report}

        return JSONResponse(status_code=status, content=report)

    return router, vitals


def vitals_lifespan(vitals: Vitals, inner: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """
    Wrap an app lifespan so background samplers run for the app's lifetime.

    Samplers start before the inner lifespan's startup and are cancelled
    after its shutdown.
    """

    @asynccontextmanager
    async def lifespan(app):
        vitals.start()
        try:
            async with inner(app) as state:
                yield state
        finally:
            await vitals.stop()

    return lifespan
