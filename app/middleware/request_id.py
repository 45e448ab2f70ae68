# app/middleware/request_id.py
from __future__ import annotations

"""
# VOD Edge: Request ID Middleware (pure ASGI)

- Reuses a client-supplied `X-Request-ID` when it is a valid UUIDv4.
- Falls back to API Gateway / CloudFront ids (`X-Amzn-Trace-Id`,
  `X-Amz-Cf-Id`) when they look safe, so edge logs and ours correlate.
- Generates a UUIDv4 otherwise.
- Stores it on `request.state.request_id`, echoes it on the response, and
  binds it into the **loguru** context for the whole request.

## Env
- `REQUEST_ID_HEADER_NAME` (default: `X-Request-ID`)
- `REQUEST_ID_TRUST_CLIENT_IDS` ("true"/"false"; default: "true")
"""

import os
import re
import uuid

from loguru import logger
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

HEADER_NAME = os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID")
TRUST_CLIENT_IDS = os.getenv("REQUEST_ID_TRUST_CLIENT_IDS", "true").lower() == "true"

_EDGE_ID_HEADERS = ("x-amzn-trace-id", "x-amz-cf-id")
# Edge ids are opaque; accept only short, log-safe tokens.
_EDGE_ID_RE = re.compile(r"^[A-Za-z0-9=;_\-]{8,128}$")


def _uuid4_or_none(value: str) -> str | None:
    try:
        parsed = uuid.UUID(value.strip())
    except (ValueError, AttributeError):
        return None
    return str(parsed) if parsed.version == 4 else None


class RequestIDMiddleware:
    """Attach a correlation id to every HTTP request."""

    def __init__(self, app: ASGIApp, header_name: str = HEADER_NAME) -> None:
        self.app = app
        self.header_name = header_name
        self._header_bytes = header_name.lower().encode("latin-1")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        req_id = self.choose(Headers(scope=scope))
        scope.setdefault("state", {})["request_id"] = req_id

        async def _send(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = [(k, v) for (k, v) in message.get("headers", []) if k.lower() != self._header_bytes]
                headers.append((self._header_bytes, req_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        with logger.contextualize(request_id=req_id):
            await self.app(scope, receive, _send)

    def choose(self, headers: Headers) -> str:
        if TRUST_CLIENT_IDS:
            incoming = headers.get(self.header_name)
            if incoming:
                parsed = _uuid4_or_none(incoming)
                if parsed:
                    return parsed
            for name in _EDGE_ID_HEADERS:
                edge = (headers.get(name) or "").strip()
                if edge and _EDGE_ID_RE.fullmatch(edge):
                    return edge
        return str(uuid.uuid4())


def get_request_id(request) -> str:
    """Current request id from `request.state` ("" when absent)."""
    return getattr(getattr(request, "state", object()), "request_id", "") or ""


__all__ = ["RequestIDMiddleware", "get_request_id"]
