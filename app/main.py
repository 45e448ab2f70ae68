# app/main.py
from __future__ import annotations

"""
# VOD Edge API: Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the signed-CDN edge service:
signed URL issuance, HLS playlist rewriting and the media catalog.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Collaborators (secret cache, playlist rewriter, catalog) live on
  `app.state`; tests pass their own to `create_app`.
- Explicit **middleware order**:
  1) request id → 2) origin allowlist → 3) CORS → 4) gzip → 5) rate limits.
- Centralized problem+json exception handling.

## Probes
- `/healthz`: liveness (process up).
- `/readyz`: readiness (signing configuration present).
- `/metrics`: Prometheus exposition.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional
import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse, Response

# Importing configures Loguru sinks and the stdlib intercept.
from app.core import logger as _logsetup  # noqa: F401
from app.core.config import settings
from app.core.exception_handlers import (
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.limiter import install_rate_limiter, rate_limit_exempt
from app.core.metrics import render_latest
from app.core.secrets import SecretCache, SecretStore
from app.middleware.origin_allowlist import OriginAllowlistMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.security_headers import configure_cors
from app.services.catalog import MediaCatalog
from app.services.playlist import PlaylistRewriter, RewriterOptions
from app.utils.aws import S3Client

logger = logging.getLogger("app.main")


# ─────────────────────────────────────────────────────────────────────────────
# 🧩 Default collaborators
# ─────────────────────────────────────────────────────────────────────────────
def s3_fetcher() -> Callable[[str], bytes]:
    """Blocking `key -> bytes` reader; the S3 client is built on first use."""
    holder: Dict[str, S3Client] = {}

    def fetch(key: str) -> bytes:
        client = holder.get("client")
        if client is None:
            client = holder.setdefault("client", S3Client())
        return client.get_bytes(key)

    return fetch


def rewriter_options() -> RewriterOptions:
    return RewriterOptions(
        key_pair_id=settings.KEY_PAIR_ID or "",
        segment_ttl_seconds=settings.SEGMENT_URL_TTL_SECONDS,
        signing_param_marker=settings.SIGNING_PARAM_MARKER,
        segment_extensions=tuple(settings.SEGMENT_EXTENSIONS),
        manifest_extensions=tuple(settings.MANIFEST_EXTENSIONS),
        sign_manifests=settings.SIGN_MANIFEST_REFERENCES,
        max_concurrent_signs=settings.MAX_CONCURRENT_SIGNS,
    )


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup logs which signing settings are missing (the service still
    starts; `/readyz` reports them). Shutdown drops the cached secret.
    """
    missing = settings.missing_signing_config
    if missing:
        logger.warning("Signing configuration incomplete: %s", ", ".join(missing))
    logger.info("✅ %s starting up (env=%s)", settings.PROJECT_NAME, settings.ENV)
    try:
        yield
    finally:
        cache = getattr(app.state, "secret_cache", None)
        if cache is not None:
            cache.invalidate()
        logger.info("🛑 %s shutting down", settings.PROJECT_NAME)


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    *,
    secret_cache: Optional[SecretCache] = None,
    rewriter: Optional[PlaylistRewriter] = None,
    catalog: Optional[MediaCatalog] = None,
) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Any collaborator left as None is built from `settings`.
    """
    enable_docs = settings.ENABLE_DOCS and not settings.is_production
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )

    app.state.secret_cache = secret_cache or SecretCache(
        SecretStore(),
        settings.SECRET_ID,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )
    app.state.rewriter = rewriter or PlaylistRewriter(s3_fetcher(), rewriter_options())
    app.state.catalog = catalog or MediaCatalog(settings.MEDIA_TABLE)

    # ── Middlewares (added innermost first) ─────────────────────────────────
    install_rate_limiter(app)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    configure_cors(app)
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(OriginAllowlistMiddleware, allowlist=settings.ALLOWED_ORIGINS)
        logger.info("Origin allowlist enabled (%d origins)", len(settings.ALLOWED_ORIGINS))
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ──────────────────────────────────────────────────
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]

    # ── Routers (versioned API) ─────────────────────────────────────────────
    from app.api.v1.routers import router as api_v1_router

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"], response_model=None)
    @rate_limit_exempt()
    async def healthz() -> Dict[str, bool]:
        """Liveness probe; no external checks."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"], response_model=None)
    @rate_limit_exempt()
    async def readyz() -> JSONResponse:
        """Readiness: every setting the signing paths need is present."""
        missing = settings.missing_signing_config
        body = {
            "ready": not missing,
            "missing": missing,
            "checks": {"secret_cached": app.state.secret_cache.cached},
        }
        return JSONResponse(body, status_code=200 if not missing else 503)

    @app.get("/metrics", include_in_schema=False, response_model=None)
    @rate_limit_exempt()
    async def metrics() -> Response:
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app", "s3_fetcher", "rewriter_options"]


# Local dev runner (prefer: `uvicorn app.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
