# app/core/config.py
from __future__ import annotations

"""
# VOD Edge: Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; AWS resources are optional so imports never crash.
- CDN domain normalization and CSV → list helpers.
- Signing TTLs bounded to what the CDN verifier accepts.

## Usage
    from app.core.config import settings
"""

import logging
from typing import Annotated, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev

TEN_YEARS_IN_SECONDS = 10 * 365 * 24 * 60 * 60


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _strip_scheme(v: str | None) -> str:
    """Reduce 'https://cdn.example.com/' to 'cdn.example.com'."""
    s = (v or "").strip()
    for scheme in ("https://", "http://"):
        if s.startswith(scheme):
            s = s[len(scheme):]
    return s.rstrip("/")


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Signing:
        - `KEY_PAIR_ID` names the public key registered with the CDN.
        - The private key never lives here; it is read from `SECRET_ID`.

    Notes:
        - `CLOUDFRONT_DOMAIN` is stored as a bare host; the request protocol
          is chosen per request from `X-Forwarded-Proto`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "VOD Edge API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True

    # ── AWS ───────────────────────────────────────────────────
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_SESSION_TOKEN: Optional[SecretStr] = None
    AWS_S3_ENDPOINT_URL: Optional[str] = None  # LocalStack/MinIO
    S3_BUCKET: Optional[str] = None
    MEDIA_TABLE: str = "YogiflixMedia"

    # ── CDN signing ───────────────────────────────────────────
    CLOUDFRONT_DOMAIN: Optional[str] = None  # e.g., d123.cloudfront.net
    SECRET_ID: Optional[str] = None
    KEY_PAIR_ID: Optional[str] = None
    # Empty → each URL is signed for exactly itself.
    RESOURCE_PATTERN: Optional[str] = None
    SIGNED_URL_TTL_SECONDS: int = Field(TEN_YEARS_IN_SECONDS, ge=60)
    SEGMENT_URL_TTL_SECONDS: int = Field(3600, ge=60, le=7 * 24 * 60 * 60)

    # ── Playlist proxy ────────────────────────────────────────
    SIGNING_PARAM_MARKER: str = "-PREFIX"
    SEGMENT_EXTENSIONS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["ts"])
    MANIFEST_EXTENSIONS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["m3u8"])
    SIGN_MANIFEST_REFERENCES: bool = False
    MAX_CONCURRENT_SIGNS: int = Field(256, ge=1, le=4096)
    REQUEST_TIMEOUT_SECONDS: float = Field(25.0, gt=0, le=300)
    PLAYLIST_REQUIRE_CLIENT_AUTH: bool = False

    # ── Edge origin allowlist ────────────────────────────────
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("SEGMENT_EXTENSIONS", "MANIFEST_EXTENSIONS", mode="before")
    @classmethod
    def _assemble_extensions(cls, v: str | List[str]):
        items = _split_csv(v) if isinstance(v, str) else list(v or [])
        return [str(e).strip().lstrip(".").lower() for e in items if str(e).strip()]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def _assemble_origins(cls, v: str | List[str]):
        if isinstance(v, str):
            return [o.rstrip("/") for o in _split_csv(v)]
        return v

    @field_validator("CLOUDFRONT_DOMAIN", mode="before")
    @classmethod
    def _normalize_cdn_domain(cls, v: str | None) -> str | None:
        """Accept 'cdn.example.com' or 'https://cdn.example.com/'; keep the host."""
        s = _strip_scheme(v)
        return s or None

    @field_validator("RESOURCE_PATTERN", "SECRET_ID", "KEY_PAIR_ID", "S3_BUCKET", mode="before")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        s = (v or "").strip()
        return s or None

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def missing_signing_config(self) -> List[str]:
        """Names of the settings the signing paths cannot run without."""
        required = {
            "S3_BUCKET": self.S3_BUCKET,
            "CLOUDFRONT_DOMAIN": self.CLOUDFRONT_DOMAIN,
            "SECRET_ID": self.SECRET_ID,
            "KEY_PAIR_ID": self.KEY_PAIR_ID,
        }
        return [name for name, value in required.items() if not value]


# Singleton instance
settings = Settings()
