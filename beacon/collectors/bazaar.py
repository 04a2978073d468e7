"""x402 Bazaar discovery collector (offset pagination, 429 back-off)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from beacon.collectors.base import CollectResult, Collector
from beacon.config import DEFAULT_BAZAAR_URL
from beacon.models import Discovery, utc_now_iso

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100
RETRY_DELAYS: tuple[float, ...] = (5.0, 10.0, 20.0)


def item_to_discovery(item: dict[str, Any], discovered_at: str) -> Discovery | None:
    resource = item.get("resource")
    if not isinstance(resource, str) or not resource.strip():
        return None
    payment_options = [
        {
            "network": accept.get("network"),
            "scheme": accept.get("scheme"),
            "asset": accept.get("asset"),
            "amount": accept.get("maxAmountRequired"),
            "payTo": accept.get("payTo"),
        }
        for accept in item.get("accepts") or []
        if isinstance(accept, dict)
    ]
    return Discovery(
        url=resource,
        protocol="mcp",
        source_data={
            "type": "bazaar",
            "resourceName": resource,
            "resourceType": item.get("type"),
            "x402Version": item.get("x402Version"),
            "lastUpdated": item.get("lastUpdated"),
            "paymentOptions": payment_options,
            "discoveredAt": discovered_at,
        },
    )


class BazaarCollector(Collector):
    source_type = "bazaar"

    def __init__(
        self,
        bazaar_url: str = DEFAULT_BAZAAR_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_delays: tuple[float, ...] = RETRY_DELAYS,
    ) -> None:
        super().__init__(transport=transport)
        self.bazaar_url = bazaar_url.rstrip("/")
        self.retry_delays = retry_delays

    async def _get(self, client: httpx.AsyncClient, params: dict[str, Any]) -> httpx.Response:
        url = f"{self.bazaar_url}/resources"
        resp = await client.get(url, params=params)
        for delay in self.retry_delays:
            if resp.status_code != 429:
                break
            logger.info("bazaar rate limited, retrying in %.0fs", delay)
            await asyncio.sleep(delay)
            resp = await client.get(url, params=params)
        return resp

    async def collect(self, cursor: dict[str, Any]) -> CollectResult:
        discoveries: list[Discovery] = []
        offset = 0
        now = utc_now_iso()
        try:
            async with self._client() as client:
                while True:
                    resp = await self._get(client, {"limit": PAGE_LIMIT, "offset": offset})
                    if resp.status_code != 200:
                        raise httpx.HTTPStatusError(
                            f"Bazaar API returned {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                    data = resp.json()
                    items = data.get("items") or []
                    if not items:
                        break
                    for item in items:
                        discovery = item_to_discovery(item, now) if isinstance(item, dict) else None
                        if discovery is not None:
                            discoveries.append(discovery)

                    total = (data.get("pagination") or {}).get("total")
                    if total is not None and offset + PAGE_LIMIT >= total:
                        break
                    if len(items) < PAGE_LIMIT:
                        break
                    offset += PAGE_LIMIT
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("bazaar collection failed at offset %d: %s", offset, exc)
            return CollectResult(
                status=False,
                discoveries=discoveries,
                total_fetched=len(discoveries),
                error=str(exc),
            )

        return CollectResult(
            status=True,
            discoveries=discoveries,
            cursor_updates={"lastOffset": offset, "totalFetched": len(discoveries)},
            total_fetched=len(discoveries),
        )
