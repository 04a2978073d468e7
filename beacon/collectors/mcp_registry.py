"""Official MCP registry collector (``/v0.1/servers``, cursor pagination)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from beacon.collectors.base import CollectResult, Collector
from beacon.config import DEFAULT_MCP_REGISTRY_URL
from beacon.models import Discovery, utc_now_iso

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100
REMOTE_TYPES_WITH_URL = ("streamable-http", "sse")
_OFFICIAL_META = "io.modelcontextprotocol.registry/official"


def remotes_to_discoveries(entry: dict[str, Any], discovered_at: str) -> list[Discovery]:
    """Turn one registry server entry into discoveries, one per usable remote.

    Remotes of other transport types, without a URL, or with an unresolved
    ``{{template}}`` URL are skipped.
    """
    server = entry.get("server") or {}
    meta = (entry.get("_meta") or {}).get(_OFFICIAL_META) or {}
    found: list[Discovery] = []
    for remote in server.get("remotes") or []:
        remote_type = remote.get("type")
        url = remote.get("url")
        if remote_type not in REMOTE_TYPES_WITH_URL:
            continue
        if not isinstance(url, str) or not url.strip() or "{{" in url:
            continue
        found.append(
            Discovery(
                url=url,
                protocol="mcp",
                source_data={
                    "type": "mcp-registry",
                    "serverName": server.get("name"),
                    "serverVersion": server.get("version"),
                    "description": server.get("description"),
                    "status": meta.get("status") or "active",
                    "transportType": remote_type,
                    "discoveredAt": discovered_at,
                },
            )
        )
    return found


class McpRegistryCollector(Collector):
    source_type = "mcp-registry"

    def __init__(
        self,
        registry_url: str = DEFAULT_MCP_REGISTRY_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport=transport)
        self.registry_url = registry_url.rstrip("/")

    async def collect(self, cursor: dict[str, Any]) -> CollectResult:
        discoveries: list[Discovery] = []
        total = 0
        page_cursor: str | None = None
        now = utc_now_iso()
        try:
            async with self._client() as client:
                while True:
                    params: dict[str, Any] = {"limit": PAGE_LIMIT}
                    if page_cursor is not None:
                        params["cursor"] = page_cursor
                    resp = await client.get(f"{self.registry_url}/v0.1/servers", params=params)
                    if resp.status_code != 200:
                        raise httpx.HTTPStatusError(
                            f"Registry API returned {resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                    data = resp.json()
                    servers = data.get("servers") or []
                    if not servers:
                        break
                    for entry in servers:
                        discoveries.extend(remotes_to_discoveries(entry, now))
                        total += 1
                    next_cursor = (data.get("metadata") or {}).get("nextCursor")
                    if not next_cursor:
                        break
                    page_cursor = next_cursor
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("MCP registry collection failed after %d server(s): %s", total, exc)
            return CollectResult(status=False, total_fetched=total, error=str(exc))

        return CollectResult(
            status=True,
            discoveries=discoveries,
            cursor_updates={"lastCursor": page_cursor, "totalFetched": total},
            total_fetched=total,
        )
