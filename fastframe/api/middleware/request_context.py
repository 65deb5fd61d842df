from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from fastframe.api.observability.metrics import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION_SECONDS,
    normalize_path,
)

DEFAULT_ACCESS_LOGGER = "fastframe.access"


def _json_log(log: logging.Logger, event: str, **fields):
    # Structured log in a single line
    msg = {"event": event, **fields}
    log.info("%s", json.dumps(msg, separators=(",", ":"), default=str))


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One JSON line per request plus Prometheus request metrics.

    Fields: request_id, method, path, status_code, duration_ms.
    A request that raises is logged with status_code 500 before re-raising.
    """

    def __init__(self, app, *, name: str = DEFAULT_ACCESS_LOGGER, logger: Optional[logging.Logger] = None):
        super().__init__(app)
        self.log = logger or logging.getLogger(name)

    def _record(self, request: Request, status: int, start: float) -> None:
        dur_ms = int((time.time() - start) * 1000)

        # Prometheus metrics (low-cardinality path)
        p = normalize_path(request.url.path)
        m = request.method.upper()
        HTTP_REQUESTS_TOTAL.labels(method=m, path=p, status=str(status)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=m, path=p).observe(dur_ms / 1000.0)

        _json_log(
            self.log,
            "request",
            request_id=getattr(request.state, "request_id", None),
            method=request.method,
            path=request.url.path,
            status_code=status,
            duration_ms=dur_ms,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.time()
        try:
            resp = await call_next(request)
        except Exception:
            self._record(request, 500, start)
            raise
        self._record(request, getattr(resp, "status_code", 0), start)
        return resp
