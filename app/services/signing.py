from __future__ import annotations

"""
CDN signed URLs (custom policy, RSA-SHA1).

A signed URL is the original URL plus three query parameters:

    <url>?Policy=<b64>&Signature=<b64>&Key-Pair-Id=<id>

- `Policy` is the serialized policy document, base64-encoded with the CDN
  alphabet (`+`→`-`, `/`→`~`, padding stripped).
- `Signature` is RSA-SHA1 (PKCS#1 v1.5) over the *serialized policy bytes*,
  not over the encoded token, encoded with the same alphabet.
- `Key-Pair-Id` names the public key the edge verifies with.

The verifier checks the signature against the exact bytes it decodes from
`Policy`, so the string we encode and the string we sign must be the same
object. `serialize_policy` is the only place that produces it.
"""

import base64
import json
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from app.core.exceptions import InvalidInputException, InvalidKeyException


PrivateKeyInput = Union[str, bytes, rsa.RSAPrivateKey]

_CDN_B64_ENCODE = str.maketrans({"+": "-", "/": "~"})
_CDN_B64_DECODE = str.maketrans({"-": "+", "~": "/"})


@dataclass(frozen=True)
class SignedURLComponents:
    """Ephemeral signing output; never stored."""

    policy_token: str
    signature: str
    key_pair_id: str
    expires_at: int

    def as_query(self) -> str:
        return f"Policy={self.policy_token}&Signature={self.signature}&Key-Pair-Id={self.key_pair_id}"


# ─────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────
def cdn_b64encode(data: bytes) -> str:
    """Base64 with the CDN query-safe alphabet and no padding."""
    return base64.b64encode(data).decode("ascii").translate(_CDN_B64_ENCODE).rstrip("=")


def cdn_b64decode(token: str) -> bytes:
    """Inverse of `cdn_b64encode` (re-pads before decoding)."""
    std = token.translate(_CDN_B64_DECODE)
    return base64.b64decode(std + "=" * (-len(std) % 4))


# ─────────────────────────────────────────────────────────────
# Policy
# ─────────────────────────────────────────────────────────────
def build_policy(resource: str, expires_at: int) -> Dict[str, Any]:
    """Single-statement custom policy scoped to `resource` until `expires_at`."""
    return {
        "Statement": [
            {
                "Resource": resource,
                "Condition": {"DateLessThan": {"AWS:EpochTime": int(expires_at)}},
            }
        ]
    }


def serialize_policy(policy: Dict[str, Any]) -> str:
    """Compact JSON in insertion order; the exact string that gets signed."""
    return json.dumps(policy, separators=(",", ":"), ensure_ascii=False)


# ─────────────────────────────────────────────────────────────
# Key handling
# ─────────────────────────────────────────────────────────────
def _normalize_pem(raw: Union[str, bytes]) -> bytes:
    """Accept PEM stored with literal `\\n` escapes (env vars, JSON secrets)."""
    s = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    s = s.strip()
    if "-----BEGIN" in s and "\\n" in s:
        s = s.replace("\\n", "\n")
    return s.encode("utf-8")


@lru_cache(maxsize=8)
def _load_rsa_key(pem: bytes) -> rsa.RSAPrivateKey:
    try:
        key = load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyException(message="Signing key could not be parsed") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidKeyException(message="Signing key is not an RSA key")
    return key


def load_private_key(private_key: PrivateKeyInput) -> rsa.RSAPrivateKey:
    """Return a usable RSA key from PEM text/bytes or an already-loaded key."""
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key
    if not private_key:
        raise InvalidKeyException(message="Signing key is empty")
    return _load_rsa_key(_normalize_pem(private_key))


def rsa_sha1_sign(message: bytes, private_key: PrivateKeyInput) -> bytes:
    key = load_private_key(private_key)
    try:
        return key.sign(message, padding.PKCS1v15(), hashes.SHA1())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyException(message="Signing key cannot produce RSA-SHA1 signatures") from e


# ─────────────────────────────────────────────────────────────
# Signing
# ─────────────────────────────────────────────────────────────
def sign_components(
    *,
    resource: str,
    private_key: PrivateKeyInput,
    ttl_seconds: int,
    key_pair_id: str,
    now: Optional[int] = None,
) -> SignedURLComponents:
    """Build, encode, and sign a policy for `resource`."""
    if not key_pair_id:
        raise InvalidInputException(message="key_pair_id is required")
    if int(ttl_seconds) <= 0:
        raise InvalidInputException(message="ttl_seconds must be positive")

    issued_at = int(time.time()) if now is None else int(now)
    expires_at = issued_at + int(ttl_seconds)

    policy_str = serialize_policy(build_policy(resource, expires_at))
    policy_bytes = policy_str.encode("utf-8")
    signature = rsa_sha1_sign(policy_bytes, private_key)

    return SignedURLComponents(
        policy_token=cdn_b64encode(policy_bytes),
        signature=cdn_b64encode(signature),
        key_pair_id=key_pair_id,
        expires_at=expires_at,
    )


def sign_url(
    url: str,
    private_key: PrivateKeyInput,
    ttl_seconds: int,
    resource_pattern: Optional[str],
    key_pair_id: str,
    *,
    now: Optional[int] = None,
) -> str:
    """Return `url` with `Policy`, `Signature` and `Key-Pair-Id` appended.

    `resource_pattern` scopes the signature (e.g. ``https://cdn.example/*``).
    When it is empty the policy resource defaults to `url` itself, so the
    signature is valid for exactly that URL.

    Raises
    ------
    InvalidInputException
        Empty `url` / `key_pair_id`, or non-positive `ttl_seconds`.
    InvalidKeyException
        The key cannot be parsed or used for RSA-SHA1.
    """
    if not url:
        raise InvalidInputException(message="url is required")

    components = sign_components(
        resource=resource_pattern or url,
        private_key=private_key,
        ttl_seconds=ttl_seconds,
        key_pair_id=key_pair_id,
        now=now,
    )
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{components.as_query()}"


__all__ = [
    "SignedURLComponents",
    "build_policy",
    "serialize_policy",
    "cdn_b64encode",
    "cdn_b64decode",
    "load_private_key",
    "rsa_sha1_sign",
    "sign_components",
    "sign_url",
]
