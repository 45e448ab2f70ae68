# app/security_headers.py
from __future__ import annotations

"""
# VOD Edge: CORS & cache helpers

- **CORS installer**: exact allow-list from `settings.ALLOWED_ORIGINS`
  (safe localhost defaults in development, nothing in other envs).
- **Cache helpers**: `set_sensitive_cache()` for credentials / signed URLs,
  `set_playlist_cache()` for rewritten playlists (they embed expiring
  signatures, so shared caches must not keep them).
"""

from typing import Iterable, List, Optional

from fastapi import Response
from starlette.middleware.cors import CORSMiddleware

from app.core.config import settings

_DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def set_sensitive_cache(response: Response) -> None:
    """`no-store` for responses carrying credentials or long-lived signed URLs."""
    response.headers.setdefault("Cache-Control", "no-store")
    response.headers.setdefault("Pragma", "no-cache")
    response.headers.setdefault("Expires", "0")


def set_playlist_cache(response: Response, *, seconds: int = 0) -> None:
    """Private caching only; `seconds` must stay well under the signature TTL."""
    if seconds <= 0:
        response.headers["Cache-Control"] = "no-store"
    else:
        response.headers["Cache-Control"] = f"private, max-age={int(seconds)}"


def cors_origins() -> List[str]:
    if settings.ALLOWED_ORIGINS:
        return list(settings.ALLOWED_ORIGINS)
    return list(_DEV_ORIGINS) if settings.ENV == "development" else []


def configure_cors(app, *, allow_headers: Optional[Iterable[str]] = None) -> None:
    """Install strict CORS for the configured origins."""
    allow_headers = allow_headers or [
        "Content-Type",
        "X-Request-ID",
        "X-Client-Id",
        "X-Client-Secret",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS", "POST"],
        allow_headers=list(allow_headers),
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=3600,
    )


__all__ = ["configure_cors", "cors_origins", "set_sensitive_cache", "set_playlist_cache"]
