from __future__ import annotations

"""
VOD Edge: HTTP Rate Limiting (SlowAPI)
=======================================

Highlights
----------
- **Client aware** keying: per verified client id once auth has run, else per client IP
  (X-Forwarded-For / X-Real-IP / socket peer).
- **Exemptions**: probes/docs, configurable trusted IPs.
- **Test/CI friendly**: `RATE_LIMIT_NAMESPACE` prefixes keys,
  `RATE_LIMIT_TEST_BYPASS` disables limits when truthy.
- **Backends**: Redis via `RATELIMIT_STORAGE_URI` or in-memory fallback.

Environment
-----------
RATE_LIMIT_ENABLED           default: "true"
DEFAULT_RATE_LIMIT           default: "120/minute"
RATELIMIT_STORAGE_URI        default: "" (falls back to "memory://")
RATE_LIMIT_SKIP_PATHS        default: "/healthz,/readyz,/docs,/openapi.json"
RATE_LIMIT_TRUSTED_IPS       default: "" (comma separated)
RATE_LIMIT_NAMESPACE         default: ""
RATE_LIMIT_TEST_BYPASS       default: ""

Usage
-----
    @router.post("/signed-url")
    @rate_limit("30/second")
    async def create_signed_url(request: Request, response: Response): ...
"""

import os
from typing import Callable, List, Optional, Set

from dotenv import load_dotenv
from loguru import logger
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request

load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "120/minute").strip()
STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "").strip()

SKIP_PATHS: List[str] = [
    p.strip()
    for p in os.getenv("RATE_LIMIT_SKIP_PATHS", "/healthz,/readyz,/docs,/openapi.json").split(",")
    if p.strip()
]
TRUSTED_IPS: Set[str] = {ip.strip() for ip in os.getenv("RATE_LIMIT_TRUSTED_IPS", "").split(",") if ip.strip()}
NAMESPACE = os.getenv("RATE_LIMIT_NAMESPACE", "").strip()


# ──────────────────────────────────────────────────────────────
# 🧠 Keying & exemptions
# ──────────────────────────────────────────────────────────────
def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    return get_remote_address(request) or "unknown"


def rate_limit_key(request: Request) -> str:
    """Verified client id when auth already ran for this request, else client IP."""
    client_id = getattr(request.state, "client_id", None)
    key = f"client:{client_id}" if client_id else f"ip:{client_ip(request)}"
    return f"{NAMESPACE}:{key}" if NAMESPACE else key


def _path_is_skipped(path: str) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in SKIP_PATHS)


def should_exempt_request(request: Optional[Request]) -> bool:
    # Env is re-read per request so tests can toggle without reloading.
    if os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() != "true":
        return True
    if os.getenv("RATE_LIMIT_TEST_BYPASS", "").strip().lower() in _TRUTHY:
        return True
    if request is None:
        return False
    if _path_is_skipped(request.url.path):
        return True
    return client_ip(request) in TRUSTED_IPS


# ──────────────────────────────────────────────────────────────
# 🧰 Limiter instance
# ──────────────────────────────────────────────────────────────
def _default_limits() -> List[str]:
    return [chunk.strip() for chunk in DEFAULT_LIMIT.split(",") if chunk.strip()]


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=_default_limits(),
    headers_enabled=True,
    storage_uri=STORAGE_URI or "memory://",
)


def _exempt_when(request: Optional[Request] = None) -> bool:
    req = request
    if req is None:
        try:
            req = limiter._request_context.get()  # type: ignore[attr-defined]
        except (AttributeError, LookupError):
            req = None
    return should_exempt_request(req)


# ──────────────────────────────────────────────────────────────
# 🎛 Decorators / installer
# ──────────────────────────────────────────────────────────────
def rate_limit(*limits: str) -> Callable:
    """Per-route limits, e.g. ``@rate_limit("10/second", "600/minute")``."""
    selected = list(limits) if limits else _default_limits()

    def _apply(fn: Callable) -> Callable:
        for value in reversed(selected):
            fn = limiter.limit(value, exempt_when=_exempt_when)(fn)
        return fn

    return _apply


def rate_limit_exempt() -> Callable:
    return limiter.exempt


def install_rate_limiter(app) -> None:
    """Attach SlowAPI middleware unless disabled by env."""
    if os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() != "true":
        logger.info("RateLimiter disabled by env; middleware not installed")
        return
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    logger.info("SlowAPI middleware installed | default={} | storage={}", _default_limits(), STORAGE_URI or "memory://")


__all__ = ["limiter", "rate_limit", "rate_limit_exempt", "install_rate_limiter", "client_ip", "rate_limit_key"]
