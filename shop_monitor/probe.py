from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx
import structlog

from shop_monitor.config import ProbeConfig
from shop_monitor.errors import ProbeFailure, SubsystemUnavailable


logger = structlog.get_logger(__name__)

_DEFAULT_ITEM_KEYS = ("items", "products", "data", "results")
_UNAVAILABLE_STATUS_CODES = {404, 410}


class CatalogProbe(Protocol):
    async def has_healthy_item(self) -> bool:
        """True if at least one sellable item is visible.

        Raises SubsystemUnavailable when the catalog platform is absent and
        ProbeFailure when no verdict could be produced.
        """
        ...


def _extract_items(payload: Any, items_key: str | None) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        raise ProbeFailure(f"unexpected catalog payload type {type(payload).__name__}")

    keys = (items_key,) if items_key else _DEFAULT_ITEM_KEYS
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    raise ProbeFailure(f"catalog payload has no item list under {', '.join(keys)}")


class HttpCatalogProbe:
    """Probe a catalog listing endpoint with a one-item query."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str | None,
        *,
        params: dict[str, str] | None = None,
        items_key: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.client = client
        self.url = (url or "").strip()
        self.params = dict(params if params is not None else {"status": "publish", "limit": "1"})
        self.items_key = items_key
        self.headers = dict(headers or {})

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, config: ProbeConfig) -> "HttpCatalogProbe":
        return cls(
            client,
            config.catalog_url,
            params=config.params,
            items_key=config.items_key,
            headers=config.headers,
        )

    async def has_healthy_item(self) -> bool:
        if not self.url:
            raise SubsystemUnavailable("catalog URL not configured")

        try:
            resp = await self.client.get(self.url, params=self.params, headers=self.headers)
        except httpx.HTTPError as e:
            raise ProbeFailure(f"{type(e).__name__}: {e}") from e

        if resp.status_code in _UNAVAILABLE_STATUS_CODES:
            raise SubsystemUnavailable(f"catalog endpoint returned {resp.status_code}")
        if resp.status_code >= 300:
            raise ProbeFailure(f"catalog endpoint returned {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProbeFailure(f"catalog response is not JSON: {e}") from e

        return len(_extract_items(payload, self.items_key)) > 0


async def probe_health(probe: CatalogProbe, *, timeout: float) -> bool:
    """Run a probe with a timeout, treating any failure as unhealthy.

    SubsystemUnavailable propagates so callers can skip the cycle.
    """
    try:
        return bool(await asyncio.wait_for(probe.has_healthy_item(), timeout=timeout))
    except SubsystemUnavailable:
        raise
    except asyncio.TimeoutError:
        logger.warning("Catalog probe timed out, treating as empty", timeout=timeout)
        return False
    except ProbeFailure as e:
        logger.warning("Catalog probe failed, treating as empty", error=str(e))
        return False
    except Exception as e:
        logger.error("Unexpected catalog probe error, treating as empty", error=str(e))
        return False
