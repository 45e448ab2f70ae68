# app/core/dependencies.py
from __future__ import annotations

"""
Request dependencies: VOD Edge
===============================

Collaborators (secret cache, storage, rewriter, catalog) are built once by the
app factory and stored on `app.state`; these dependencies hand them to routes.
Tests swap any of them through `app.dependency_overrides`.

Client authentication
---------------------
Callers send `x-client-id` and `x-client-secret`. Both are compared in
constant time against the secret record; a missing header is 401, any
mismatch is a single neutral 403 that never says which half was wrong.
"""

import hmac
import logging

from fastapi import Depends, Request

from app.core.config import Settings, settings as _settings
from app.core.exceptions import ForbiddenException, UnauthenticatedException
from app.core.secrets import ClientSecretRecord, SecretCache
from app.services.catalog import MediaCatalog
from app.services.playlist import PlaylistRewriter

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = "x-client-id"
CLIENT_SECRET_HEADER = "x-client-secret"

__all__ = [
    "CLIENT_ID_HEADER",
    "CLIENT_SECRET_HEADER",
    "get_settings",
    "get_secret_cache",
    "get_rewriter",
    "get_catalog",
    "read_client_credentials",
    "verify_client_credentials",
    "require_client",
]


# ──────────────────────────────────────────────────────────────
# 🧩 app.state accessors
# ──────────────────────────────────────────────────────────────
def get_settings() -> Settings:
    return _settings


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"app.state.{name} is not configured")
    return value


def get_secret_cache(request: Request) -> SecretCache:
    return _state(request, "secret_cache")


def get_rewriter(request: Request) -> PlaylistRewriter:
    return _state(request, "rewriter")


def get_catalog(request: Request) -> MediaCatalog:
    return _state(request, "catalog")


# ──────────────────────────────────────────────────────────────
# 🔑 Client credentials
# ──────────────────────────────────────────────────────────────
def read_client_credentials(request: Request) -> tuple[str, str]:
    """Return (client_id, client_secret) or raise 401 when either is absent."""
    client_id = (request.headers.get(CLIENT_ID_HEADER) or "").strip()
    client_secret = request.headers.get(CLIENT_SECRET_HEADER) or ""
    if not client_id or not client_secret:
        raise UnauthenticatedException()
    return client_id, client_secret


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_client_credentials(client_id: str, client_secret: str, record: ClientSecretRecord) -> None:
    """Raise 403 unless both values match the record."""
    id_ok = _same(client_id, record.client_id)
    secret_ok = _same(client_secret, record.client_secret.get_secret_value())
    if not (id_ok and secret_ok):
        logger.info("client auth rejected")
        raise ForbiddenException()


async def require_client(
    request: Request,
    cache: SecretCache = Depends(get_secret_cache),
) -> ClientSecretRecord:
    """
    Dependency: authenticate the caller and return the secret record.

    Header presence is checked before the vault is touched, so a request
    without credentials never triggers a secret fetch.
    """
    client_id, client_secret = read_client_credentials(request)
    record = await cache.get()
    verify_client_credentials(client_id, client_secret, record)
    request.state.client_id = record.client_id
    return record
