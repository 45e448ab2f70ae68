import json
import time
from urllib.parse import parse_qs, urlsplit

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

import app.services.signing as signing_mod
from app.core.config import TEN_YEARS_IN_SECONDS, settings
from app.core.secrets import ClientSecretRecord
from app.services.signing import cdn_b64decode
from tests.fixtures.fakes import CLIENT_ID, CLIENT_SECRET

BASE = "/api/v1/signed-url"


@pytest.fixture()
def signer_calls(monkeypatch):
    """Record every call that reaches the signer."""
    calls = []
    real = signing_mod.sign_url

    def _spy(*args, **kwargs):
        calls.append(args)
        return real(*args, **kwargs)

    monkeypatch.setattr(signing_mod, "sign_url", _spy)
    return calls


@pytest.mark.anyio
async def test_signs_url_for_valid_client(async_client, auth_headers, public_key):
    url = "https://cdn.example/movies/intro.mp4"
    before = int(time.time())
    r = await async_client.post(BASE, json={"url": url}, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.headers["cache-control"] == "no-store"

    signed = r.json()["signedUrl"]
    assert signed.startswith(url + "?Policy=")
    params = {k: v[0] for k, v in parse_qs(urlsplit(signed).query).items()}
    assert params["Key-Pair-Id"] == settings.KEY_PAIR_ID

    policy_bytes = cdn_b64decode(params["Policy"])
    public_key.verify(cdn_b64decode(params["Signature"]), policy_bytes, padding.PKCS1v15(), hashes.SHA1())

    statement = json.loads(policy_bytes)["Statement"][0]
    assert statement["Resource"] == url
    expires = statement["Condition"]["DateLessThan"]["AWS:EpochTime"]
    assert before + TEN_YEARS_IN_SECONDS <= expires <= int(time.time()) + TEN_YEARS_IN_SECONDS


@pytest.mark.anyio
async def test_resource_pattern_setting_is_used(async_client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "RESOURCE_PATTERN", "https://cdn.example/*")
    r = await async_client.post(BASE, json={"url": "https://cdn.example/a.m3u8?x=1"}, headers=auth_headers)
    assert r.status_code == 200
    signed = r.json()["signedUrl"]
    assert signed.startswith("https://cdn.example/a.m3u8?x=1&Policy=")
    token = parse_qs(urlsplit(signed).query)["Policy"][0]
    assert json.loads(cdn_b64decode(token))["Statement"][0]["Resource"] == "https://cdn.example/*"


@pytest.mark.anyio
async def test_invalid_json_is_400(async_client, auth_headers, signer_calls):
    r = await async_client.post(BASE, content=b"{not json", headers={**auth_headers, "content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid JSON"
    assert signer_calls == []


@pytest.mark.anyio
async def test_missing_credentials_is_401_without_touching_the_vault(async_client, secret_store, signer_calls):
    r = await async_client.post(BASE, json={"url": "https://cdn.example/a.mp4"}, headers={"x-client-id": "client-1"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing client credentials"
    assert secret_store.calls == 0
    assert signer_calls == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "headers",
    [
        {"x-client-id": "client-1", "x-client-secret": "wrong"},
        {"x-client-id": "someone-else", "x-client-secret": "s3cret-value"},
    ],
)
async def test_mismatched_credentials_is_403_and_never_signs(async_client, headers, signer_calls):
    r = await async_client.post(BASE, json={"url": "https://cdn.example/a.mp4"}, headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid client credentials"
    assert signer_calls == []


@pytest.mark.anyio
@pytest.mark.parametrize("body", [{}, {"url": ""}, {"href": "https://cdn.example/a.mp4"}, []])
async def test_missing_url_is_400(async_client, auth_headers, body, signer_calls):
    r = await async_client.post(BASE, json=body, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing url parameter"
    assert signer_calls == []


@pytest.mark.anyio
async def test_secret_is_fetched_once_across_requests(async_client, auth_headers, secret_store, secret_cache):
    for _ in range(3):
        r = await async_client.post(BASE, json={"url": "https://cdn.example/a.mp4"}, headers=auth_headers)
        assert r.status_code == 200
    assert secret_store.calls == 1
    assert secret_cache.fetch_count == 1


@pytest.mark.anyio
async def test_unusable_private_key_is_500(async_client, auth_headers, secret_store):
    secret_store.record = ClientSecretRecord(clientId=CLIENT_ID, clientSecret=CLIENT_SECRET, privateKey="garbage")
    r = await async_client.post(BASE, json={"url": "https://cdn.example/a.mp4"}, headers=auth_headers)
    assert r.status_code == 500
    assert r.json()["detail"] == "Signing key could not be parsed"
    assert "garbage" not in r.text


@pytest.mark.anyio
async def test_request_id_is_echoed(async_client, auth_headers):
    rid = "0b9d6c1e-5a7f-4b8e-9c3d-2f1e0a9b8c7d"
    r = await async_client.post(BASE, json={"url": "https://cdn.example/a.mp4"}, headers={**auth_headers, "X-Request-ID": rid})
    assert r.headers["x-request-id"] == rid


@pytest.mark.anyio
async def test_empty_body_without_credentials_is_401(async_client, secret_store):
    r = await async_client.post(BASE, content=b"")
    assert r.status_code == 401
    assert secret_store.calls == 0


@pytest.mark.anyio
async def test_empty_body_with_credentials_is_missing_url(async_client, auth_headers, signer_calls):
    r = await async_client.post(BASE, content=b"", headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing url parameter"
    assert signer_calls == []
