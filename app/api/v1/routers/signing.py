"""
VOD Edge • Signed URL issuance
==============================

- POST /signed-url  → `{"signedUrl": ...}` for an authenticated client

Flow
----
1. Body must be JSON (400 `Invalid JSON` otherwise); an empty body reads as `{}`.
2. `x-client-id` / `x-client-secret` must be present (401) and match the
   vault record (403). The signer is never reached on an auth failure.
3. `url` must be present (400 `Missing url parameter`).
4. Sign with the vault's private key, `SIGNED_URL_TTL_SECONDS` and
   `RESOURCE_PATTERN`.

Responses are `no-store`; signed URLs are never logged.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.config import Settings
from app.core.dependencies import get_secret_cache, get_settings, require_client
from app.core.exceptions import AppException, InvalidInputException
from app.core.limiter import rate_limit
from app.core.metrics import inc_signed_url
from app.core.secrets import SecretCache
from app.security_headers import set_sensitive_cache
from app.services import signing

router = APIRouter(tags=["Signing"])
logger = logging.getLogger(__name__)


class SignedUrlIn(BaseModel):
    url: str = Field(..., description="URL to sign; its query string is kept")


class SignedUrlOut(BaseModel):
    signedUrl: str


async def _read_json(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidInputException(message="Invalid JSON") from e
    return payload if isinstance(payload, dict) else {}


@router.post(
    "/signed-url",
    response_model=SignedUrlOut,
    summary="Issue a long-lived signed CDN URL",
    openapi_extra={"requestBody": {"content": {"application/json": {"schema": SignedUrlIn.model_json_schema()}}}},
)
@rate_limit("30/second", "1200/minute")
async def create_signed_url(
    request: Request,
    response: Response,
    cache: SecretCache = Depends(get_secret_cache),
    cfg: Settings = Depends(get_settings),
) -> JSONResponse:
    try:
        payload = await _read_json(request)
        record = await require_client(request, cache)
    except Exception:
        inc_signed_url("rejected")
        raise

    url = payload.get("url")
    if not url or not isinstance(url, str):
        inc_signed_url("rejected")
        raise InvalidInputException(message="Missing url parameter")

    if not cfg.KEY_PAIR_ID:
        inc_signed_url("error")
        raise AppException(message="Signing is not configured")

    try:
        signed = signing.sign_url(
            url,
            record.private_key.get_secret_value(),
            cfg.SIGNED_URL_TTL_SECONDS,
            cfg.RESOURCE_PATTERN,
            cfg.KEY_PAIR_ID,
        )
    except Exception:
        inc_signed_url("error")
        raise

    inc_signed_url("ok")
    logger.info("Signed URL issued (pattern=%s)", "custom" if cfg.RESOURCE_PATTERN else "exact")
    out = JSONResponse(SignedUrlOut(signedUrl=signed).model_dump())
    set_sensitive_cache(out)
    return out


__all__ = ["router", "SignedUrlIn", "SignedUrlOut"]
