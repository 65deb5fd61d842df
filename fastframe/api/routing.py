from __future__ import annotations

import re
from typing import Any

from fastapi import APIRouter

_VERSION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def normalize_prefix(prefix: str) -> str:
    """'' -> '', 'a' -> '/a', '/a/' -> '/a'."""
    p = (prefix or "").strip()
    if not p or p == "/":
        return ""
    return "/" + p.strip("/")


def create_router(prefix: str = "", **kwargs: Any) -> APIRouter:
    return APIRouter(prefix=normalize_prefix(prefix), **kwargs)


def version_prefix(version: str) -> str:
    v = (version or "").strip().strip("/")
    if not _VERSION_RE.match(v):
        raise ValueError(f"Provide a valid version for adding an api, got {version!r}")
    return f"/{v}"
