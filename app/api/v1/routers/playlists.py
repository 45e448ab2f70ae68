from __future__ import annotations

"""
VOD Edge • Playlist proxy
=========================

- GET /playlists/{key:path}  → stored HLS playlist with every segment
  reference made absolute and signed

The CDN routes `*.m3u8` requests here. The response is built fresh on every
request and is never cached by shared caches (it embeds expiring
signatures). When `PLAYLIST_REQUIRE_CLIENT_AUTH` is on, missing or wrong
credentials are 401/403. Every other failure, vault errors included,
collapses to `500` with an empty body; the cause is logged, never returned.
"""

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, Request, Response

from app.core.config import Settings
from app.core.dependencies import get_rewriter, get_secret_cache, get_settings, require_client
from app.core.exceptions import ForbiddenException, UnauthenticatedException
from app.core.metrics import observe_playlist_rewrite
from app.core.secrets import SecretCache
from app.security_headers import set_playlist_cache
from app.services.playlist import PlaylistRewriter, RewriteContext

router = APIRouter(tags=["Playlists"])
logger = logging.getLogger(__name__)

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"


def request_protocol(request: Request) -> str:
    """First `X-Forwarded-Proto` value, else https."""
    raw = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
    return raw or "https"


async def _render(
    key: str,
    request: Request,
    cfg: Settings,
    cache: SecretCache,
    rewriter: PlaylistRewriter,
) -> str:
    if not cfg.CLOUDFRONT_DOMAIN:
        raise RuntimeError("CLOUDFRONT_DOMAIN is not configured")
    context = RewriteContext(
        protocol=request_protocol(request),
        host=cfg.CLOUDFRONT_DOMAIN,
        query_params=dict(request.query_params),
    )
    record = await cache.get()
    return await rewriter.rewrite(key, context, record.private_key.get_secret_value())


@router.get(
    "/playlists/{key:path}",
    summary="Fetch and sign an HLS playlist",
    response_class=Response,
    responses={200: {"content": {PLAYLIST_MEDIA_TYPE: {}}}, 500: {"description": "Empty body"}},
)
async def get_playlist(
    key: str,
    request: Request,
    cache: SecretCache = Depends(get_secret_cache),
    rewriter: PlaylistRewriter = Depends(get_rewriter),
    cfg: Settings = Depends(get_settings),
) -> Response:
    started = time.perf_counter()
    try:
        if cfg.PLAYLIST_REQUIRE_CLIENT_AUTH:
            await require_client(request, cache)
        body = await asyncio.wait_for(
            _render(key, request, cfg, cache, rewriter),
            timeout=cfg.REQUEST_TIMEOUT_SECONDS,
        )
    except (UnauthenticatedException, ForbiddenException):
        raise
    except Exception:
        observe_playlist_rewrite("error", time.perf_counter() - started)
        logger.exception("Playlist rewrite failed for key=%s", key)
        failed = Response(content=b"", status_code=500)
        set_playlist_cache(failed)
        return failed

    observe_playlist_rewrite("ok", time.perf_counter() - started)
    resp = Response(content=body, media_type=PLAYLIST_MEDIA_TYPE)
    set_playlist_cache(resp)
    return resp


__all__ = ["router", "request_protocol", "PLAYLIST_MEDIA_TYPE"]
