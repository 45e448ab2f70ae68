# tests/conftest.py
"""
Global test bootstrap
- Pins signing settings in the environment before `app.*` is imported
- Makes SlowAPI rate-limiting test-friendly (bypass by default)
- Generates one real RSA key per session so signatures are verified, not mocked
- Exposes fakes for storage, the secrets vault and the media table
"""

from __future__ import annotations

import os
import random

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing the app so Settings picks it up)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("ENV", "development")
os.environ.setdefault("S3_BUCKET", "vod-test-bucket")
os.environ.setdefault("CLOUDFRONT_DOMAIN", "cdn.example")
os.environ.setdefault("SECRET_ID", "vod/signing")
os.environ.setdefault("KEY_PAIR_ID", "K2TESTKEYPAIR")
os.environ.setdefault("ALLOWED_ORIGINS", "")
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("DEFAULT_RATE_LIMIT", "10000/minute")
os.environ.setdefault("RATE_LIMIT_TEST_BYPASS", "1")
os.environ.setdefault("RATE_LIMIT_NAMESPACE", f"pytest-{random.getrandbits(32)}")

import pytest

from tests.fixtures.app import *    # noqa: F401,F403,E402
from tests.fixtures.keys import *   # noqa: F401,F403,E402
from tests.fixtures.fakes import *  # noqa: F401,F403,E402


@pytest.fixture
def anyio_backend():
    return "asyncio"
