"""
🧭 VOD Edge • API v1 Router Aggregator
=====================================

Exports the combined `router` and each sub-router.

Quick usage
-----------
    from app.api.v1.routers import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")

Or with the factory:

    from app.api.v1.routers import build_v1_router
    app.include_router(build_v1_router(), prefix="/api/v1")

Auth and rate limits live in the child routers.
"""

from fastapi import APIRouter

from .media import router as media_router
from .playlists import router as playlists_router
from .signing import router as signing_router


def build_v1_router() -> APIRouter:
    """
    Compose the API v1 surface.

    Includes:
      • `POST /signed-url`
      • `GET  /playlists/{key}`
      • `GET  /media`
    """
    r = APIRouter()
    r.include_router(signing_router)
    r.include_router(playlists_router)
    r.include_router(media_router)
    return r


router = build_v1_router()

__all__ = ["router", "build_v1_router", "signing_router", "playlists_router", "media_router"]
