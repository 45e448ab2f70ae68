# tests/fixtures/app.py

"""
🧩 App Fixture:
- Builds the real FastAPI app through `create_app`
- Injects fake storage / secrets / catalog collaborators
- Returns an HTTP client fixture for integration tests
"""

from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.secrets import SecretCache
from app.main import create_app, rewriter_options
from app.services.catalog import MediaCatalog
from app.services.playlist import PlaylistRewriter


@pytest.fixture()
def secret_cache(secret_store) -> SecretCache:
    return SecretCache(secret_store, settings.SECRET_ID)


@pytest.fixture()
def rewriter(storage) -> PlaylistRewriter:
    return PlaylistRewriter(storage, rewriter_options())


@pytest.fixture()
def catalog(media_table) -> MediaCatalog:
    return MediaCatalog(settings.MEDIA_TABLE, table=media_table)


@pytest.fixture()
def app(secret_cache, rewriter, catalog) -> FastAPI:
    """🧪 The production app wired to in-process fakes."""
    return create_app(secret_cache=secret_cache, rewriter=rewriter, catalog=catalog)


@pytest.fixture()
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """🌐 Async HTTP client bound to the app (no network)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


__all__ = ["secret_cache", "rewriter", "catalog", "app", "async_client"]
