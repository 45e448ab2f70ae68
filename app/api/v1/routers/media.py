"""
VOD Edge • Media catalog

- GET /media  → every item of the media table (authenticated clients)

Scan failures return `500 {"error": "Internal Server Error"}`.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.core.dependencies import get_catalog, require_client
from app.core.limiter import rate_limit
from app.core.secrets import ClientSecretRecord
from app.security_headers import set_sensitive_cache
from app.services.catalog import MediaCatalog

router = APIRouter(tags=["Media"])
logger = logging.getLogger(__name__)


@router.get("/media", summary="List the media catalog")
@rate_limit("10/second", "600/minute")
async def list_media(
    request: Request,
    response: Response,
    _client: ClientSecretRecord = Depends(require_client),
    catalog: MediaCatalog = Depends(get_catalog),
) -> JSONResponse:
    try:
        items = await catalog.list_media()
    except Exception:
        logger.exception("Error fetching media")
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    out = JSONResponse(items)
    set_sensitive_cache(out)
    return out


__all__ = ["router"]
