import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-Id"
REQUEST_ID_STATE_KEY = "request_id"


def new_request_id(no_hyphen: bool = False) -> str:
    rid = uuid.uuid4()
    return rid.hex if no_hyphen else str(rid)


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, key: str = REQUEST_ID_HEADER, no_hyphen: bool = False, inject: bool = True):
        super().__init__(app)
        self.key = key
        self.no_hyphen = no_hyphen
        self.inject = inject

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.key) or new_request_id(self.no_hyphen)
        setattr(request.state, REQUEST_ID_STATE_KEY, rid)

        response: Response = await call_next(request)
        if self.inject:
            response.headers[self.key] = rid
        return response


def get_request_id(request: Request):
    return getattr(request.state, REQUEST_ID_STATE_KEY, None)
