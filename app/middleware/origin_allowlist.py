from __future__ import annotations

from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp


class OriginAllowlistMiddleware(BaseHTTPMiddleware):
    """Refuse browser requests from origins outside the allowlist.

    Enabled when mounted with a non-empty `allowlist`. Requests without an
    `Origin` header (players, server-to-server, the CDN itself) pass through;
    allowed origins are answered by the CORS middleware further in.
    """

    def __init__(self, app: ASGIApp, *, allowlist: Iterable[str]) -> None:
        super().__init__(app)
        self.allow = {str(o).strip().rstrip("/") for o in allowlist if str(o).strip()}

    async def dispatch(self, request, call_next: Callable):
        origin = (request.headers.get("origin") or "").strip().rstrip("/")
        if self.allow and origin and origin not in self.allow:
            return PlainTextResponse("Origin not allowed", status_code=403)
        return await call_next(request)
