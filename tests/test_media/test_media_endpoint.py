from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from app.core.exceptions import UpstreamException
from app.services.catalog import MediaCatalog
from tests.fixtures.fakes import FakeTable

BASE = "/api/v1/media"


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "Scan")


@pytest.mark.anyio
async def test_lists_every_item_across_pages(async_client, auth_headers, media_table):
    media_table.pages = [
        {"Items": [{"guid": "a", "duration": Decimal("12")}], "LastEvaluatedKey": {"guid": "a"}},
        {"Items": [{"guid": "b", "rating": Decimal("4.5"), "tags": ["x"]}]},
    ]
    r = await async_client.get(BASE, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json() == [{"guid": "a", "duration": 12}, {"guid": "b", "rating": 4.5, "tags": ["x"]}]
    assert media_table.scan_calls == [{}, {"ExclusiveStartKey": {"guid": "a"}}]


@pytest.mark.anyio
async def test_missing_credentials_is_401(async_client, media_table):
    r = await async_client.get(BASE)
    assert r.status_code == 401
    assert media_table.scan_calls == []


@pytest.mark.anyio
async def test_wrong_credentials_is_403(async_client, media_table):
    r = await async_client.get(BASE, headers={"x-client-id": "client-1", "x-client-secret": "nope"})
    assert r.status_code == 403
    assert media_table.scan_calls == []


@pytest.mark.anyio
async def test_scan_failure_is_generic_500(async_client, auth_headers, media_table):
    media_table.error = _client_error("ProvisionedThroughputExceededException")
    r = await async_client.get(BASE, headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {"error": "Internal Server Error"}


def test_catalog_maps_client_errors_to_upstream():
    catalog = MediaCatalog("YogiflixMedia", table=FakeTable(error=_client_error("ResourceNotFoundException")))
    with pytest.raises(UpstreamException):
        catalog.scan_all()


def test_catalog_stops_at_page_cap(monkeypatch):
    monkeypatch.setattr("app.services.catalog.MAX_SCAN_PAGES", 3)
    page = {"Items": [{"guid": "x"}], "LastEvaluatedKey": {"guid": "x"}}
    table = FakeTable([page] * 5)
    assert len(MediaCatalog("t", table=table).scan_all()) == 3
    assert len(table.scan_calls) == 3
