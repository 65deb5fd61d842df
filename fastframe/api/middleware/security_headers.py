from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

Header = Tuple[str, str]

_DEFAULT_HSTS_MAX_AGE = 180 * 24 * 60 * 60


def dns_prefetch_control(opt: Any) -> List[Header]:
    allow = bool(opt.get("allow")) if isinstance(opt, dict) else False
    return [("X-DNS-Prefetch-Control", "on" if allow else "off")]


def frameguard(opt: Any) -> List[Header]:
    action = opt.get("action") if isinstance(opt, dict) else opt
    action = (action if isinstance(action, str) else "sameorigin").upper()
    if action not in ("DENY", "SAMEORIGIN"):
        raise ValueError(f"frameguard action must be 'deny' or 'sameorigin', got {action!r}")
    return [("X-Frame-Options", action)]


def hsts(opt: Any) -> List[Header]:
    opt = opt if isinstance(opt, dict) else {}
    value = f"max-age={int(opt.get('max_age', _DEFAULT_HSTS_MAX_AGE))}"
    if opt.get("include_subdomains", True):
        value += "; includeSubDomains"
    if opt.get("preload"):
        value += "; preload"
    return [("Strict-Transport-Security", value)]


def ie_no_open(opt: Any) -> List[Header]:
    return [("X-Download-Options", "noopen")] if opt is not False else []


def no_sniff(opt: Any) -> List[Header]:
    return [("X-Content-Type-Options", "nosniff")] if opt is not False else []


def xss_filter(opt: Any) -> List[Header]:
    return [("X-XSS-Protection", "1; mode=block")] if opt is not False else []


def referrer_policy(opt: Any) -> List[Header]:
    policy = opt.get("policy") if isinstance(opt, dict) else opt
    return [("Referrer-Policy", policy if isinstance(policy, str) else "no-referrer")]


def content_security_policy(opt: Any) -> List[Header]:
    directives: Dict[str, Any] = (opt or {}).get("directives") or {}
    parts = []
    for name, value in directives.items():
        sources = " ".join(value) if isinstance(value, (list, tuple)) else str(value)
        parts.append(f"{name.replace('_', '-')} {sources}".strip())
    if not parts:
        return []
    header = "Content-Security-Policy-Report-Only" if (opt or {}).get("report_only") else "Content-Security-Policy"
    return [(header, "; ".join(parts))]


HELMET_FUNCTIONS: Dict[str, Callable[[Any], List[Header]]] = {
    "dns_prefetch_control": dns_prefetch_control,
    "frameguard": frameguard,
    "hsts": hsts,
    "ie_no_open": ie_no_open,
    "no_sniff": no_sniff,
    "xss_filter": xss_filter,
    "referrer_policy": referrer_policy,
    "content_security_policy": content_security_policy,
}

DEFAULT_HELMET = ("dns_prefetch_control", "frameguard", "hsts", "ie_no_open", "no_sniff", "xss_filter")


def build_security_headers(default: bool = False, options: Optional[Dict[str, Any]] = None) -> List[Header]:
    """
    Resolve the header list once at startup.

    `default=True` applies the default set; individual options add to it and
    override the default entry of the same name.
    """
    options = {k: v for k, v in (options or {}).items() if v is not None}
    selected: Dict[str, Any] = {name: None for name in DEFAULT_HELMET} if default else {}
    for name, opt in options.items():
        if name not in HELMET_FUNCTIONS:
            raise ValueError(f"Unknown helmet option: {name}")
        selected[name] = opt

    headers: List[Header] = []
    for name, opt in selected.items():
        headers.extend(HELMET_FUNCTIONS[name](opt))
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Helmet-style security headers.
    """

    def __init__(self, app, *, default: bool = False, options: Optional[Dict[str, Any]] = None):
        super().__init__(app)
        self.headers = build_security_headers(default=default, options=options)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        resp = await call_next(request)
        for name, value in self.headers:
            resp.headers.setdefault(name, value)
        return resp
