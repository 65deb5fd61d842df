from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fastframe.core.config import parse_size
from fastframe.core.errors import HttpError, status_phrase

log = logging.getLogger("fastframe.parse")

BODY_STATE_KEY = "body"


class BodyParseError(ValueError):
    pass


def _media_type(content_type: str) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_json(content_type: str) -> bool:
    mt = _media_type(content_type)
    return mt == "application/json" or mt.endswith("+json")


def is_form(content_type: str) -> bool:
    return _media_type(content_type) == "application/x-www-form-urlencoded"


def _parse_form(raw: bytes) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in parse_qsl(raw.decode("utf-8"), keep_blank_values=True):
        if key in out:
            prev = out[key]
            out[key] = prev + [value] if isinstance(prev, list) else [prev, value]
        else:
            out[key] = value
    return out


def parse_body(raw: bytes, content_type: str) -> Any:
    """Default parser: JSON and urlencoded forms; everything else parses to {}."""
    if not raw:
        return {}
    if is_json(content_type):
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise BodyParseError("Invalid JSON body") from e
    if is_form(content_type):
        try:
            return _parse_form(raw)
        except UnicodeDecodeError as e:
            raise BodyParseError("Invalid form body") from e
    return {}


async def get_body(request: Request) -> Any:
    """
    Parsed request body.

    Uses the value stored by BodyParserMiddleware when it ran; otherwise
    parses the body on first access and caches it on request.state.
    """
    state = request.scope.get("state") or {}
    if BODY_STATE_KEY in state:
        return state[BODY_STATE_KEY]

    raw = await request.body()
    try:
        body = parse_body(raw, request.headers.get("content-type", ""))
    except BodyParseError as e:
        raise HttpError(400, str(e)) from e
    setattr(request.state, BODY_STATE_KEY, body)
    return body


class BodyParserMiddleware:
    """
    Reads and parses the request body before routing.

    - stores the result in request.state.body
    - replays the raw bytes downstream so endpoints can still read them
    - 413 when the body exceeds the limit, 400 on malformed JSON
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        parser: Optional[Callable[[bytes, str], Any]] = None,
        limit: Union[str, int] = "1mb",
        form_limit: Union[str, int] = "56kb",
    ):
        self.app = app
        self.parser = parser
        self.limit = parse_size(limit)
        self.form_limit = parse_size(form_limit)

    async def _reject(self, status_code: int, message: str, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=status_code, content={"error": message})
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_type = Headers(scope=scope).get("content-type", "")
        max_size = self.form_limit if is_form(content_type) else self.limit

        chunks: list[bytes] = []
        size = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # client went away mid-body; nothing to answer
                log.info("client disconnected before body completed path=%s", scope.get("path"))
                return
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > max_size:
                log.info("request body rejected size>%s path=%s", max_size, scope.get("path"))
                await self._reject(413, status_phrase(413), scope, receive, send)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        raw = b"".join(chunks)
        if self.parser is not None:
            body = self.parser(raw, content_type)
        else:
            try:
                body = parse_body(raw, content_type)
            except BodyParseError as e:
                await self._reject(400, str(e), scope, receive, send)
                return

        scope.setdefault("state", {})[BODY_STATE_KEY] = body

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": raw, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)
