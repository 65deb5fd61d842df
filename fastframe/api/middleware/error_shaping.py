from __future__ import annotations

import html
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import HTMLResponse, JSONResponse, Response

from fastframe.core.config import is_development_like
from fastframe.core.errors import INVALID_PARAMS_ERROR_MSG, HttpError, status_phrase

log = logging.getLogger("fastframe.errors")

ErrorListener = Callable[[BaseException, Request], Any]

_HTML_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{status} {title}</title></head>
<body>
<h1>{message}</h1>
{details}
</body>
</html>
"""


def _status_of(exc: BaseException) -> int:
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) and 400 <= code <= 599 else 500


def _message_of(exc: BaseException) -> str:
    if isinstance(exc, HttpError):
        return exc.message
    if isinstance(exc, StarletteHTTPException):
        return str(exc.detail)
    return str(exc) or type(exc).__name__


def _expose_of(exc: BaseException, status: int) -> bool:
    expose = getattr(exc, "expose", None)
    if expose is not None:
        return bool(expose)
    # framework HTTPExceptions carry client-facing detail for 4xx
    return isinstance(exc, StarletteHTTPException) and status < 500


def error_payload(exc: BaseException, *, env: str) -> tuple[int, Dict[str, Any]]:
    """
    Map an exception to (status, {"error": ..., "details": ...}).

    The exception message is shown in development-like environments or when
    the exception is exposable; otherwise the status reason phrase is used.
    `details` is omitted when the exception has none.
    """
    status = _status_of(exc)
    if is_development_like(env) or _expose_of(exc, status):
        message = _message_of(exc)
    else:
        message = status_phrase(status)

    payload: Dict[str, Any] = {"error": message}
    details = getattr(exc, "details", None)
    if details is not None:
        payload["details"] = jsonable_encoder(details)
    return status, payload


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return "text/html" in accept and "json" not in accept


def _render_html(status: int, payload: Dict[str, Any]) -> HTMLResponse:
    items: List[str] = []
    details = payload.get("details") or {}
    for err in (details.get("validationErrors") or []) if isinstance(details, dict) else []:
        items.append(f"<li>{html.escape(str(err.get('stack') or err.get('message')))}</li>")
    return HTMLResponse(
        status_code=status,
        content=_HTML_PAGE.format(
            status=status,
            title=html.escape(status_phrase(status)),
            message=html.escape(str(payload["error"])),
            details=f"<ul>{''.join(items)}</ul>" if items else "",
        ),
    )


class ErrorRenderer:
    """
    Builds error responses and notifies error listeners.

    Shared by the FastAPI exception handlers (HTTP errors raised inside
    routing) and SafeErrorMiddleware (anything else).
    """

    def __init__(
        self,
        *,
        env: str,
        handler: Optional[Callable[[Request, BaseException], Response]] = None,
        listeners: Optional[List[ErrorListener]] = None,
        display_errors: bool = False,
    ):
        self.env = env
        self.handler = handler
        self.listeners = listeners if listeners is not None else []
        self.display_errors = display_errors

    def notify(self, exc: BaseException, request: Request) -> None:
        for listener in self.listeners:
            try:
                listener(exc, request)
            except Exception:
                log.exception("error listener failed listener=%r", listener)

    def render(self, request: Request, exc: BaseException) -> Response:
        self.notify(exc, request)
        if self.handler is not None:
            return self.handler(request, exc)

        status, payload = error_payload(exc, env=self.env)
        headers = getattr(exc, "headers", None)
        if _wants_html(request):
            resp: Response = _render_html(status, payload)
        else:
            resp = JSONResponse(status_code=status, content=payload)
        for k, v in (headers or {}).items():
            resp.headers[k] = v
        return resp

    async def http_exception_handler(self, request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code >= 500:
            log.error("HTTP %s on path=%s: %s", exc.status_code, request.url.path, exc.detail)
        return self.render(request, exc)

    async def request_validation_handler(self, request: Request, exc: RequestValidationError) -> Response:
        errors = [
            {
                "property": ".".join(["request", *[str(p) for p in e.get("loc", ())]]),
                "message": e.get("msg"),
                "name": e.get("type"),
            }
            for e in exc.errors()
        ]
        wrapped = HttpError(
            400,
            INVALID_PARAMS_ERROR_MSG,
            details={"validationErrors": errors if self.display_errors else None},
        )
        return self.render(request, wrapped)


class SafeErrorMiddleware(BaseHTTPMiddleware):
    """
    - Never return stack traces to clients
    - Preserve request_id if present
    - Log traceback server-side
    """

    def __init__(self, app, *, renderer: ErrorRenderer, request_id_header: str = "X-Request-Id"):
        super().__init__(app)
        self.renderer = renderer
        self.request_id_header = request_id_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            rid = getattr(request.state, "request_id", None) or request.headers.get(self.request_id_header)
            log.error(
                "Unhandled error: %s rid=%s path=%s\n%s",
                str(e),
                rid,
                request.url.path,
                traceback.format_exc(),
            )
            return self.renderer.render(request, e)


def install_error_handlers(app, renderer: ErrorRenderer) -> None:
    app.add_exception_handler(StarletteHTTPException, renderer.http_exception_handler)
    app.add_exception_handler(RequestValidationError, renderer.request_validation_handler)
