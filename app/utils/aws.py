# app/utils/aws.py
from __future__ import annotations

"""
🧊 VOD Edge • AWS Client Utilities
=================================

Thin, read-only wrappers over boto3 used by the playlist proxy and the
media catalog.

🎯 Goals
--------
- Explicit timeouts + bounded retries
- Defensive key normalization (no leading slash, no `..`)
- Pluggable creds (env / role / IRSA) with explicit override if provided
- Zero secret leakage in logs

🔗 Contract
-----------
- `S3Client.get_bytes(key)` → bytes | `S3NotFoundError` | `S3StorageError`
- `boto_client(service)` / `boto_resource(service)` for other services

The playlist path never writes, lists, or deletes through this module.
"""

from typing import Any, Dict, Optional
import logging
import re

import boto3
import botocore
from botocore.config import Config as BotoConfig

from app.core.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Exceptions
# ─────────────────────────────────────────────────────────────────────────────

class S3StorageError(RuntimeError):
    """Raised when a storage operation fails (network, auth, policy, etc.)."""


class S3NotFoundError(S3StorageError):
    """Raised when the requested key does not exist."""


_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

def normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject path traversal ('..')

    Raises
    ------
    S3StorageError
        If key is empty or walks out of its prefix.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise S3StorageError("Invalid storage key: empty")
    if ".." in k.split("/"):
        raise S3StorageError("Invalid storage key: path traversal detected")
    return k


def _secret_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() if hasattr(v, "get_secret_value") else str(v)


def _boto_kwargs(*, read_timeout: int = 10) -> Dict[str, Any]:
    """Shared client kwargs: region, retries, timeouts, explicit creds if configured."""
    cfg = BotoConfig(
        retries={"max_attempts": 3, "mode": "standard"},
        connect_timeout=3,
        read_timeout=read_timeout,
    )
    kwargs: Dict[str, Any] = {"config": cfg, "region_name": settings.AWS_REGION}

    ak = settings.AWS_ACCESS_KEY_ID
    sk = _secret_value(settings.AWS_SECRET_ACCESS_KEY)
    st = _secret_value(settings.AWS_SESSION_TOKEN)
    if ak and sk:
        kwargs["aws_access_key_id"] = ak
        kwargs["aws_secret_access_key"] = sk
        if st:
            kwargs["aws_session_token"] = st
    return kwargs


def boto_client(service: str, **overrides: Any):
    """Build a low-level boto3 client with the shared defaults."""
    kwargs = _boto_kwargs()
    kwargs.update(overrides)
    return boto3.client(service, **kwargs)


def boto_resource(service: str, **overrides: Any):
    """Build a boto3 resource with the shared defaults."""
    kwargs = _boto_kwargs()
    kwargs.update(overrides)
    return boto3.resource(service, **kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# 📦 S3 Client (read-only)
# ─────────────────────────────────────────────────────────────────────────────

class S3Client:
    """
    Read-only S3 wrapper with safe defaults.

    Parameters
    ----------
    bucket : str | None
        Source bucket. Defaults to `settings.S3_BUCKET`.
    endpoint_url : str | None
        Custom S3-compatible endpoint (LocalStack/MinIO). Defaults to
        `settings.AWS_S3_ENDPOINT_URL`.
    client : Any | None
        Pre-built boto3 client (tests inject a stub here).
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        *,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket or settings.S3_BUCKET
        if not self.bucket:
            raise S3StorageError("S3_BUCKET not configured")

        if client is not None:
            self.client = client
        else:
            overrides: Dict[str, Any] = {}
            endpoint_cfg = endpoint_url or settings.AWS_S3_ENDPOINT_URL
            if endpoint_cfg:
                overrides["endpoint_url"] = endpoint_cfg
            try:
                self.client = boto_client("s3", **overrides)
            except Exception as e:  # pragma: no cover
                raise S3StorageError(f"Failed to create S3 client: {e}") from e

        self._repr = f"S3Client(bucket={self.bucket})"

    def get_bytes(self, key: str) -> bytes:
        """
        GET an object body.

        Raises
        ------
        S3NotFoundError
            The key does not exist.
        S3StorageError
            Any other failure (invalid key, network, permissions).
        """
        k = normalize_key(key)
        logger.debug("s3.get_object bucket=%s key=%s", self.bucket, k)
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=k)
            body = resp["Body"]
            try:
                return body.read()
            finally:
                close = getattr(body, "close", None)
                if close:
                    close()
        except botocore.exceptions.ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise S3NotFoundError(f"No such key: {k}") from e
            raise S3StorageError(f"get_object failed ({code or 'unknown'})") from e
        except botocore.exceptions.BotoCoreError as e:
            raise S3StorageError(f"get_object failed: {e}") from e

    def __repr__(self) -> str:  # pragma: no cover
        return self._repr


__all__ = [
    "S3Client",
    "S3StorageError",
    "S3NotFoundError",
    "normalize_key",
    "boto_client",
    "boto_resource",
]
