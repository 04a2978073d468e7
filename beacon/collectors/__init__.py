"""beacon.collectors — registry adapters producing discoveries.

Exports:
    Collector             — base class
    CollectResult         — per-pass outcome
    ManualCollector       — curated ``manual.json`` entries
    McpRegistryCollector  — official MCP registry
    Erc8004Collector      — ERC-8004 identity registry event logs
    BazaarCollector       — x402 Bazaar discovery API
    default_collectors    — registration-ordered list used by the monitor
"""

from __future__ import annotations

from beacon.collectors.bazaar import BazaarCollector
from beacon.collectors.base import CollectResult, Collector
from beacon.collectors.erc8004 import Erc8004Collector
from beacon.collectors.manual import ManualCollector
from beacon.collectors.mcp_registry import McpRegistryCollector
from beacon.config import MonitorConfig


def default_collectors(config: MonitorConfig) -> list[Collector]:
    """Collectors in registration order; merge input follows this order.

    The ERC-8004 collector is only registered when an RPC URL is configured.
    """
    collectors: list[Collector] = [McpRegistryCollector(config.mcp_registry_url)]
    if config.alchemy_url:
        collectors.append(Erc8004Collector(config.alchemy_url))
    collectors.append(BazaarCollector(config.bazaar_url))
    collectors.append(ManualCollector(config.data_dir))
    return collectors


__all__ = [
    "Collector",
    "CollectResult",
    "ManualCollector",
    "McpRegistryCollector",
    "Erc8004Collector",
    "BazaarCollector",
    "default_collectors",
]
