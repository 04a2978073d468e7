"""A2A agent verifier: fetches and sanity-checks the agent card."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from beacon.models import ProbeResult, utc_now_iso
from beacon.prober.base import Verifier, elapsed_ms

logger = logging.getLogger(__name__)

AGENT_CARD_PATHS = ("/.well-known/agent-card.json", "/.well-known/agent.json")


def card_urls(url: str) -> list[str]:
    """Candidate agent-card locations for an A2A endpoint *url*."""
    if url.endswith(".json"):
        return [url]
    base = url.rstrip("/")
    return [f"{base}{path}" for path in AGENT_CARD_PATHS]


def _protocol_bindings(card: dict[str, Any]) -> list[str]:
    bindings: list[str] = []
    preferred = card.get("preferredTransport")
    if isinstance(preferred, str):
        bindings.append(preferred)
    for iface in card.get("additionalInterfaces") or []:
        transport = iface.get("transport") if isinstance(iface, dict) else None
        if isinstance(transport, str) and transport not in bindings:
            bindings.append(transport)
    return bindings


class A2aVerifier(Verifier):
    protocol = "a2a"
    CATEGORY_KEYS = (
        "isReachable",
        "hasAgentCard",
        "hasValidStructure",
        "hasSkills",
        "supportsStreaming",
    )

    async def verify(self, url: str, timeout_ms: int) -> ProbeResult:
        messages: list[str] = []
        card: dict[str, Any] | None = None
        reachable = False
        start = time.monotonic()
        try:
            async with self._client(timeout_ms) as client:
                for candidate in card_urls(url):
                    resp = await client.get(candidate, headers={"Accept": "application/json"})
                    reachable = True
                    if resp.status_code != 200:
                        messages.append(f"{candidate} returned HTTP {resp.status_code}")
                        continue
                    data = resp.json()
                    if isinstance(data, dict):
                        card = data
                        break
                    messages.append(f"{candidate} did not return a JSON object")
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("A2A probe failed for %s: %s", url, exc)
            return self._failure(str(exc) or exc.__class__.__name__)
        latency_ms = elapsed_ms(start, time.monotonic())

        if card is None:
            result = self._failure("No agent card found", {"latencyMs": latency_ms})
            result.categories["isReachable"] = reachable
            result.messages = messages + result.messages
            return result

        skills = card.get("skills") if isinstance(card.get("skills"), list) else []
        capabilities = card.get("capabilities") if isinstance(card.get("capabilities"), dict) else {}
        valid = isinstance(card.get("name"), str) and isinstance(card.get("skills"), list)
        if not valid:
            messages.append("agent card is missing name or skills")

        return ProbeResult(
            timestamp=utc_now_iso(),
            status=valid,
            categories={
                "isReachable": True,
                "hasAgentCard": True,
                "hasValidStructure": valid,
                "hasSkills": len(skills) > 0,
                "supportsStreaming": capabilities.get("streaming") is True,
            },
            summary={
                "agentName": card.get("name"),
                "skillCount": len(skills),
                "protocolBindings": _protocol_bindings(card),
                "latencyMs": latency_ms,
            },
            messages=messages,
        )
