# app/core/exceptions.py
from __future__ import annotations

"""
VOD Edge: Application Exceptions
=================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and integrate cleanly with the
problem+json shape from `app.core.exception_handlers`.

Taxonomy
--------
- `UnauthenticatedException` (401): credential headers missing
- `ForbiddenException`       (403): credential mismatch / origin refused
- `InvalidInputException`    (400): malformed body, missing field, bad signer input
- `NotFoundException`        (404): storage key or secret absent
- `StorageException`         (503): storage backend failure
- `InvalidKeyException`      (500): signing key cannot be parsed or used
- `UpstreamException`        (502): other managed-service dependency failed

Usage
-----
    raise ForbiddenException()
    raise InvalidInputException(message="Missing url parameter")
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "UnauthenticatedException",
    "ForbiddenException",
    "InvalidInputException",
    "NotFoundException",
    "StorageException",
    "InvalidKeyException",
    "UpstreamException",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code.
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Optional internal/typed error code. Defaults to `status_code`.
    request_id : str | None
        Optional request correlation id.
    details : dict | list | str | None
        Machine-readable details. Never put key material here.
    """

    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(
        self,
        *,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        status_code = int(status_code or self.default_status)
        message = message or self.default_message
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.request_id: Optional[str] = request_id
        self.details: Optional[Any] = details

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.status_code}): {self.message}"


# ──────────────────────────────────────────────────────────────
# 🔑 Client credential exceptions
# ──────────────────────────────────────────────────────────────
class UnauthenticatedException(AppException):
    """Credential headers are missing."""

    default_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Missing client credentials"


class ForbiddenException(AppException):
    """Credentials were supplied but do not match (never says which half)."""

    default_status = status.HTTP_403_FORBIDDEN
    default_message = "Invalid client credentials"


# ──────────────────────────────────────────────────────────────
# 🧾 Input / lookup
# ──────────────────────────────────────────────────────────────
class InvalidInputException(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class NotFoundException(AppException):
    default_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


# ──────────────────────────────────────────────────────────────
# ☁️ Backends & key material
# ──────────────────────────────────────────────────────────────
class StorageException(AppException):
    """Transient or backend storage failure."""

    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage unavailable"


class InvalidKeyException(AppException):
    """The signing key cannot be parsed or used for RSA-SHA1."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Signing key unusable"


class UpstreamException(AppException):
    """A managed dependency (secrets vault, catalog table) failed."""

    default_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream dependency failed"
