from __future__ import annotations

import re
from typing import Any, Callable, Sequence

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

OriginMatcher = Callable[[str], bool]


def _item_matcher(item: Any) -> OriginMatcher:
    if isinstance(item, str):
        return lambda origin: origin == item
    if isinstance(item, re.Pattern):
        return lambda origin: item.search(origin) is not None
    raise TypeError(f"Unknown origin config type - {item!r}")


def origin_matcher(config: Any) -> OriginMatcher:
    """
    Build an origin predicate from the `origin` option.

      True             -> every origin
      False            -> no origin
      "a.example"      -> exact match
      re.compile(...)  -> regex search
      [str | regex]    -> any element matches
    """
    if isinstance(config, bool):
        return lambda origin: config
    if isinstance(config, (str, re.Pattern)):
        return _item_matcher(config)
    if isinstance(config, (list, tuple)):
        checks = [_item_matcher(item) for item in config]
        return lambda origin: any(check(origin) for check in checks)
    raise TypeError(f"Unknown origin config type - {config!r}")


class OriginMatchingCORSMiddleware(CORSMiddleware):
    """
    Starlette CORS with string / regex / list origin rules.

    Allowed origins are echoed back explicitly in Access-Control-Allow-Origin;
    requests without an Origin header are same-origin and pass through.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        origin: Any = True,
        credentials: bool = False,
        methods: Sequence[str] = ("GET",),
        headers: Sequence[str] = (),
        expose: Sequence[str] = (),
        max_age: int = 600,
    ):
        super().__init__(
            app,
            allow_origins=(),
            allow_methods=methods,
            allow_headers=headers,
            allow_credentials=credentials,
            expose_headers=expose,
            max_age=max_age,
        )
        self._matches = origin_matcher(origin)

    def is_allowed_origin(self, origin: str) -> bool:
        return bool(origin) and self._matches(origin)
