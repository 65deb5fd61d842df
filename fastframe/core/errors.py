from __future__ import annotations

from http import HTTPStatus
from typing import Any, Optional

from starlette.exceptions import HTTPException

INVALID_PARAMS_ERROR_MSG = "Invalid request parameters"


def status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Unknown Error"


class HttpError(HTTPException):
    """
    HTTP error carrying a client-facing message and optional structured details.

    `expose` controls whether the message may be shown outside development
    environments; it defaults to True for 4xx and False for 5xx.
    """

    def __init__(
        self,
        status_code: int = 500,
        message: Optional[str] = None,
        details: Any = None,
        expose: Optional[bool] = None,
        headers: Optional[dict] = None,
    ):
        message = message or status_phrase(status_code)
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.details = details
        self.expose = status_code < 500 if expose is None else expose

    def __str__(self) -> str:
        return self.message


class SchemaDefinitionError(ValueError):
    """Raised when a route schema is malformed or uses unknown keywords."""
