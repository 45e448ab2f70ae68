# app/core/secrets.py
from __future__ import annotations

"""
Client secret record: store + process cache
===========================================

The secrets vault holds one JSON document per deployment:

    {"clientId": "...", "clientSecret": "...", "privateKey": "-----BEGIN ..."}

`clientId`/`clientSecret` authenticate callers of the signing endpoints;
`privateKey` is the RSA key the CDN's key pair id refers to.

`SecretCache` owns the process-wide copy:
- populated on first use behind an `asyncio.Lock` (single flight: concurrent
  first requests wait for one fetch instead of racing),
- never mutated after population,
- `invalidate()` drops it so the next request refetches (key rotation).

The cache is created by the app factory and lives on `app.state`; routes
reach it through `app.core.dependencies.get_secret_cache`.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import botocore.exceptions
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from app.core.exceptions import NotFoundException, UpstreamException
from app.core.metrics import inc_secret_fetch
from app.utils.aws import boto_client

logger = logging.getLogger(__name__)

__all__ = ["ClientSecretRecord", "SecretStore", "SecretCache"]


class ClientSecretRecord(BaseModel):
    """Parsed secret document (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_id: str = Field(..., alias="clientId", min_length=1)
    client_secret: SecretStr = Field(..., alias="clientSecret")
    private_key: SecretStr = Field(..., alias="privateKey")

    def __repr__(self) -> str:
        return f"ClientSecretRecord(client_id={self.client_id!r})"


class SecretStore:
    """Fetch and parse secret documents from AWS Secrets Manager (blocking)."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto_client("secretsmanager")
        return self._client

    def get_secret(self, secret_id: str) -> ClientSecretRecord:
        """
        Raises
        ------
        NotFoundException
            The secret id does not exist.
        UpstreamException
            Secrets Manager failed or the document is not a valid record.
        """
        if not secret_id:
            raise UpstreamException(message="Secret id not configured")

        try:
            resp = self.client.get_secret_value(SecretId=secret_id)
        except botocore.exceptions.ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code == "ResourceNotFoundException":
                raise NotFoundException(message="Secret not found") from e
            logger.warning("secrets.get_secret_value failed code=%s", code or "unknown")
            raise UpstreamException(message="Secret retrieval failed") from e
        except botocore.exceptions.BotoCoreError as e:
            logger.warning("secrets.get_secret_value failed: %s", type(e).__name__)
            raise UpstreamException(message="Secret retrieval failed") from e

        raw = resp.get("SecretString")
        if raw is None:
            raise UpstreamException(message="Secret has no string value")
        try:
            return ClientSecretRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            # Never include the payload: it holds the private key.
            raise UpstreamException(message="Secret document is malformed") from e


class SecretCache:
    """Single-flight, set-once cache of one `ClientSecretRecord`."""

    def __init__(
        self,
        store: SecretStore,
        secret_id: Optional[str],
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self._store = store
        self._secret_id = secret_id
        self._timeout = timeout
        self._value: Optional[ClientSecretRecord] = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    @property
    def cached(self) -> bool:
        return self._value is not None

    async def get(self) -> ClientSecretRecord:
        value = self._value
        if value is not None:
            return value
        async with self._lock:
            if self._value is None:
                self.fetch_count += 1
                inc_secret_fetch()
                fetch = asyncio.to_thread(self._store.get_secret, self._secret_id or "")
                if self._timeout:
                    self._value = await asyncio.wait_for(fetch, timeout=self._timeout)
                else:
                    self._value = await fetch
                logger.info("Client secret loaded (fetch #%d)", self.fetch_count)
            return self._value

    def invalidate(self) -> None:
        """Forget the cached record; the next `get()` refetches."""
        self._value = None
        logger.info("Client secret cache invalidated")
