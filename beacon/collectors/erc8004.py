"""ERC-8004 identity registry collector (Ethereum mainnet event logs).

Scans ``Registered`` events of the identity registry contract over JSON-RPC,
in block batches, starting after the cursor's ``lastProcessedBlock``.  Each
event carries the agent URI as an ABI-encoded string; inline
``data:application/json`` registration files are parsed for their MCP and
A2A service endpoints.  Registration files hosted elsewhere are not fetched.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any
from urllib.parse import unquote

import httpx
from eth_abi import decode
from eth_abi.exceptions import DecodingError

from beacon.collectors.base import CollectResult, Collector
from beacon.models import Discovery, utc_now_iso

logger = logging.getLogger(__name__)

BLOCK_BATCH_SIZE = 2000
REGISTER_TOPIC = "0x0b17c3b72e3484dbb9f80a2d57d4fca4e29d3e082aa3e7e898ad9be11e4a7ab4"
DEFAULT_CONTRACT = "0x8004A169FB4a3325136EB29fA0ceB6D2e539a432"
GENESIS_BLOCK = 24339925
REGISTRATION_TYPE = "https://eips.ethereum.org/EIPS/eip-8004#registration-v1"

_SERVICE_PROTOCOLS = {"mcp": "mcp", "a2a": "a2a"}


class RpcError(Exception):
    """The JSON-RPC node answered with an ``error`` object."""


def uri_type(agent_uri: str) -> str:
    """Classify an agent URI by scheme: ``data``, ``https``, ``http``, ``ipfs`` or ``unknown``."""
    lowered = agent_uri.strip().lower()
    for scheme in ("data", "https", "http", "ipfs"):
        if lowered.startswith(f"{scheme}:"):
            return scheme
    return "unknown"


def decode_data_uri(agent_uri: str) -> dict[str, Any] | None:
    """Return the JSON object embedded in a ``data:`` URI, or ``None``."""
    header, sep, payload = agent_uri.partition(",")
    if not sep or not header.lower().startswith("data:"):
        return None
    try:
        if header.lower().endswith(";base64"):
            text = base64.b64decode(payload).decode("utf-8")
        else:
            text = unquote(payload)
        data = json.loads(text)
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def service_endpoints(registration: dict[str, Any]) -> dict[str, str]:
    """Map protocol → endpoint URL from a registration file's service list.

    Both the current ``services`` key and the earlier ``endpoints`` key are
    read; the first http(s) entry per protocol wins.
    """
    found: dict[str, str] = {}
    services = registration.get("services")
    if not isinstance(services, list):
        services = registration.get("endpoints")
    for service in services if isinstance(services, list) else []:
        if not isinstance(service, dict):
            continue
        name = service.get("name")
        url = service.get("endpoint")
        protocol = _SERVICE_PROTOCOLS.get(name.strip().lower()) if isinstance(name, str) else None
        if protocol is None or protocol in found:
            continue
        if isinstance(url, str) and url.strip().lower().startswith(("http://", "https://")):
            found[protocol] = url.strip()
    return found


def is_registration_v1(registration: dict[str, Any]) -> bool:
    return (
        registration.get("type") == REGISTRATION_TYPE
        and isinstance(registration.get("name"), str)
        and isinstance(registration.get("services", registration.get("endpoints")), list)
    )


def decode_register_log(log: dict[str, Any]) -> dict[str, Any]:
    """Decode a ``Registered(uint256 indexed agentId, string agentURI, address indexed owner)`` log.

    Raises:
        ValueError: topics or data are malformed.
        DecodingError: the data is not an ABI-encoded string.
    """
    topics = log.get("topics")
    data = log.get("data")
    if not isinstance(topics, list) or len(topics) < 3 or not isinstance(data, str):
        raise ValueError("log has no agentId/owner topics or no data")
    if str(topics[0]).lower() != REGISTER_TOPIC:
        raise ValueError(f"unexpected event topic {topics[0]}")
    (agent_uri,) = decode(["string"], bytes.fromhex(data.removeprefix("0x")))
    return {
        "agentId": str(int(topics[1], 16)),
        "ownerAddress": "0x" + str(topics[2])[-40:].lower(),
        "agentUri": agent_uri,
    }


def log_to_discoveries(log: dict[str, Any], discovered_at: str) -> list[Discovery]:
    """Discoveries for one register event: an MCP and/or an A2A endpoint."""
    event = decode_register_log(log)
    agent_uri = event["agentUri"]
    kind = uri_type(agent_uri)
    registration = decode_data_uri(agent_uri) if kind == "data" else None
    if registration is None:
        return []

    name = registration.get("name")
    compliant = is_registration_v1(registration)
    return [
        Discovery(
            url=url,
            protocol=protocol,
            source_data={
                "type": "erc8004",
                "agentId": event["agentId"],
                "ownerAddress": event["ownerAddress"],
                "agentName": name if isinstance(name, str) and name else None,
                "uriType": kind,
                "isSpecCompliant": compliant,
                "discoveredAt": discovered_at,
            },
        )
        for protocol, url in service_endpoints(registration).items()
    ]


class Erc8004Collector(Collector):
    source_type = "erc8004"

    def __init__(
        self,
        rpc_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        batch_size: int = BLOCK_BATCH_SIZE,
    ) -> None:
        super().__init__(transport=transport)
        self.rpc_url = rpc_url
        self.batch_size = batch_size
        self._request_id = 0

    async def _rpc(self, client: httpx.AsyncClient, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        resp = await client.post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
        )
        if resp.status_code != 200:
            raise httpx.HTTPStatusError(
                f"Alchemy RPC returned {resp.status_code}",
                request=resp.request,
                response=resp,
            )
        data = resp.json()
        if not isinstance(data, dict):
            raise RpcError(f"{method}: malformed response")
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise RpcError(f"RPC error: {message}")
        return data.get("result")

    async def collect(self, cursor: dict[str, Any]) -> CollectResult:
        from_block = cursor.get("lastProcessedBlock")
        if isinstance(from_block, bool) or not isinstance(from_block, int):
            from_block = cursor.get("genesisBlock") if isinstance(cursor.get("genesisBlock"), int) else GENESIS_BLOCK
        contract = cursor.get("contract") or DEFAULT_CONTRACT

        discoveries: list[Discovery] = []
        last_processed = from_block
        log_count = 0
        now = utc_now_iso()
        try:
            async with self._client() as client:
                latest = int(await self._rpc(client, "eth_blockNumber", []), 16)
                current = from_block + 1
                while current <= latest:
                    to_block = min(current + self.batch_size - 1, latest)
                    logs = await self._rpc(
                        client,
                        "eth_getLogs",
                        [
                            {
                                "address": contract,
                                "fromBlock": hex(current),
                                "toBlock": hex(to_block),
                                "topics": [REGISTER_TOPIC],
                            }
                        ],
                    )
                    for log in logs or []:
                        log_count += 1
                        try:
                            discoveries.extend(log_to_discoveries(log, now))
                        except (DecodingError, ValueError, TypeError, AttributeError) as exc:
                            logger.debug("skipping undecodable ERC-8004 log: %s", exc)
                    last_processed = to_block
                    current = to_block + 1
        except (httpx.HTTPError, RpcError, ValueError, TypeError) as exc:
            logger.warning("ERC-8004 collection stopped after block %d: %s", last_processed, exc)
            return CollectResult(
                status=False,
                discoveries=discoveries,
                total_fetched=log_count,
                error=str(exc),
            )

        logger.info(
            "ERC-8004 scanned blocks %d..%d: %d log(s), %d endpoint(s)",
            from_block + 1,
            last_processed,
            log_count,
            len(discoveries),
        )
        return CollectResult(
            status=True,
            discoveries=discoveries,
            cursor_updates={"lastProcessedBlock": last_processed},
            total_fetched=log_count,
        )
