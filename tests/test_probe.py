from __future__ import annotations

import httpx
import pytest

from shop_monitor.errors import ProbeFailure, SubsystemUnavailable
from shop_monitor.probe import HttpCatalogProbe, probe_health


CATALOG_URL = "https://shop.example/wp-json/wc/store/v1/products"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_probe_sends_bounded_query() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": 1}])

    async with _client(handler) as client:
        assert await HttpCatalogProbe(client, CATALOG_URL).has_healthy_item() is True

    assert seen[0].url.params["limit"] == "1"
    assert seen[0].url.params["status"] == "publish"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("payload", "items_key", "expected"),
    [
        ([], None, False),
        ({"products": [{"id": 1}]}, None, True),
        ({"items": []}, None, False),
        ({"catalog": {"x": 1}, "rows": [{"id": 2}]}, "rows", True),
    ],
)
async def test_probe_reads_item_lists(payload, items_key, expected) -> None:
    async with _client(lambda r: httpx.Response(200, json=payload)) as client:
        probe = HttpCatalogProbe(client, CATALOG_URL, items_key=items_key)
        assert await probe.has_healthy_item() is expected


@pytest.mark.asyncio
async def test_missing_catalog_endpoint_is_subsystem_unavailable() -> None:
    async with _client(lambda r: httpx.Response(404)) as client:
        with pytest.raises(SubsystemUnavailable):
            await HttpCatalogProbe(client, CATALOG_URL).has_healthy_item()
        with pytest.raises(SubsystemUnavailable):
            await HttpCatalogProbe(client, None).has_healthy_item()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503),
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json={"unexpected": True}),
    ],
)
async def test_unusable_responses_are_probe_failures(response: httpx.Response) -> None:
    async with _client(lambda r: response) as client:
        with pytest.raises(ProbeFailure):
            await HttpCatalogProbe(client, CATALOG_URL).has_healthy_item()


@pytest.mark.asyncio
async def test_probe_health_treats_failures_as_unhealthy() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    async with _client(handler) as client:
        assert await probe_health(HttpCatalogProbe(client, CATALOG_URL), timeout=1.0) is False

    async with _client(lambda r: httpx.Response(410)) as client:
        with pytest.raises(SubsystemUnavailable):
            await probe_health(HttpCatalogProbe(client, CATALOG_URL), timeout=1.0)
