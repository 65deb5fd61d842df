from __future__ import annotations

from fnmatch import fnmatch
from typing import Callable, Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

NO_CACHE_HEADERS = (
    ("Cache-Control", "no-store, no-cache, must-revalidate"),
    ("Pragma", "no-cache"),
    ("Expires", "0"),
)


class NoCacheMiddleware(BaseHTTPMiddleware):
    """
    Disable client caching globally, or for matching paths / content types.

    paths: glob patterns against the URL path ("/api/*")
    types: media types or globs against the response Content-Type ("application/json", "text/*")
    """

    def __init__(self, app, *, global_: bool = False, paths: Iterable[str] = (), types: Iterable[str] = ()):
        super().__init__(app)
        self.global_ = global_
        self.paths = list(paths)
        self.types = [t.lower() for t in types]

    def _applies(self, path: str, content_type: str) -> bool:
        if self.global_:
            return True
        if any(fnmatch(path, pat) for pat in self.paths):
            return True
        media_type = content_type.split(";", 1)[0].strip().lower()
        return bool(media_type) and any(fnmatch(media_type, t) for t in self.types)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        resp = await call_next(request)
        if self._applies(request.url.path, resp.headers.get("content-type", "")):
            for name, value in NO_CACHE_HEADERS:
                resp.headers[name] = value
        return resp
