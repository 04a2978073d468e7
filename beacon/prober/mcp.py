"""MCP endpoint verifier.

Performs a HEAD ping followed by a JSON-RPC ``initialize`` handshake and a
``tools/list`` call over streamable HTTP.  An HTTP 402 answer carrying x402
payment requirements marks the endpoint as payment-capable.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from beacon.models import ProbeResult, utc_now_iso
from beacon.prober.base import Verifier, decode_body, elapsed_ms

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2025-06-18"
CLIENT_INFO = {"name": "beacon", "version": "1.0.0"}

_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
}


def _rpc(method: str, params: dict[str, Any] | None, request_id: int | None) -> dict[str, Any]:
    body: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        body["params"] = params
    if request_id is not None:
        body["id"] = request_id
    return body


def _payment_requirements(resp: httpx.Response) -> list[dict[str, Any]]:
    """Return the ``accepts`` list from an x402 ``402 Payment Required`` body."""
    try:
        data = resp.json()
    except ValueError:
        return []
    if not isinstance(data, dict):
        return []
    accepts = data.get("accepts")
    if not isinstance(accepts, list):
        return []
    return [a for a in accepts if isinstance(a, dict)]


def _empty_outcome() -> dict[str, Any]:
    return {
        "responded": False,
        "server_info": None,
        "tools": [],
        "payment_required": False,
        "accepts": [],
    }


class McpVerifier(Verifier):
    protocol = "mcp"
    CATEGORY_KEYS = (
        "isReachable",
        "supportsMcp",
        "hasTools",
        "supportsX402",
        "hasValidPaymentRequirements",
        "supportsExactScheme",
    )

    async def verify(self, url: str, timeout_ms: int) -> ProbeResult:
        messages: list[str] = []
        try:
            async with self._client(timeout_ms) as client:
                start = time.monotonic()
                try:
                    await client.head(url)
                    pinged = True
                except httpx.HTTPError as exc:
                    pinged = False
                    messages.append(f"HEAD ping failed: {exc.__class__.__name__}")
                latency_ping_ms = elapsed_ms(start, time.monotonic())

                start = time.monotonic()
                outcome = _empty_outcome()
                try:
                    await self._handshake(client, url, outcome, messages)
                except (httpx.HTTPError, ValueError) as exc:
                    if not pinged:
                        raise
                    messages.append(f"MCP handshake failed: {exc}")
                latency_list_ms = elapsed_ms(start, time.monotonic())
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("MCP probe failed for %s: %s", url, exc)
            return self._failure(str(exc) or exc.__class__.__name__)

        accepts = outcome["accepts"]
        schemes = sorted({a.get("scheme") for a in accepts if a.get("scheme")})
        networks = sorted({a.get("network") for a in accepts if a.get("network")})
        tools = outcome["tools"]
        supports_mcp = outcome["server_info"] is not None

        categories = {
            "isReachable": pinged or outcome["responded"],
            "supportsMcp": supports_mcp,
            "hasTools": len(tools) > 0,
            "supportsX402": outcome["payment_required"],
            "hasValidPaymentRequirements": len(accepts) > 0,
            "supportsExactScheme": "exact" in schemes,
        }
        server_info = outcome["server_info"] or {}
        summary = {
            "serverName": server_info.get("name"),
            "serverVersion": server_info.get("version"),
            "toolCount": len(tools),
            "networks": networks,
            "schemes": schemes,
            "latencyPingMs": latency_ping_ms,
            "latencyListToolsMs": latency_list_ms,
        }
        return ProbeResult(
            timestamp=utc_now_iso(),
            status=supports_mcp or outcome["payment_required"],
            categories=categories,
            summary=summary,
            messages=messages,
        )

    async def _handshake(
        self,
        client: httpx.AsyncClient,
        url: str,
        outcome: dict[str, Any],
        messages: list[str],
    ) -> None:
        init_params = {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": CLIENT_INFO,
        }
        resp = await client.post(url, json=_rpc("initialize", init_params, 1), headers=_HEADERS)
        outcome["responded"] = True
        if resp.status_code == 402:
            outcome["payment_required"] = True
            outcome["accepts"] = _payment_requirements(resp)
            messages.append("initialize answered 402 Payment Required")
            return
        if resp.status_code >= 400:
            messages.append(f"initialize returned HTTP {resp.status_code}")
            return

        body = decode_body(resp)
        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict):
            messages.append("initialize returned no result")
            return
        server_info = result.get("serverInfo")
        outcome["server_info"] = server_info if isinstance(server_info, dict) else {}

        headers = dict(_HEADERS)
        session_id = resp.headers.get("mcp-session-id")
        if session_id:
            headers["mcp-session-id"] = session_id
        await client.post(url, json=_rpc("notifications/initialized", None, None), headers=headers)

        resp = await client.post(url, json=_rpc("tools/list", {}, 2), headers=headers)
        if resp.status_code == 402:
            outcome["payment_required"] = True
            outcome["accepts"] = _payment_requirements(resp)
            messages.append("tools/list answered 402 Payment Required")
            return
        if resp.status_code >= 400:
            messages.append(f"tools/list returned HTTP {resp.status_code}")
            return

        body = decode_body(resp)
        result = body.get("result") if isinstance(body, dict) else None
        tools = result.get("tools") if isinstance(result, dict) else None
        outcome["tools"] = tools if isinstance(tools, list) else []
