"""Catalog merge and aggregate statistics."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from beacon.models import PROTOCOLS, SOURCE_TYPES, Discovery, Endpoint
from beacon.registry.normalizer import endpoint_id, normalize_url
from beacon.validation import Checks

logger = logging.getLogger(__name__)


def _as_discovery(item: Discovery | dict[str, Any]) -> Discovery:
    if isinstance(item, Discovery):
        return item
    return Discovery.from_dict(item)


def _check_discovery(checks: Checks, name: str, item: Any) -> None:
    if isinstance(item, Discovery):
        url, protocol, source = item.url, item.protocol, item.source_data
    elif isinstance(item, dict):
        url, protocol, source = item.get("url"), item.get("protocol"), item.get("sourceData")
    else:
        checks.require(False, f"{name}: Must be a discovery object")
        return
    checks.non_empty_str(f"{name}.url", url)
    if protocol is not None:
        checks.non_empty_str(f"{name}.protocol", protocol)
    checks.is_mapping(f"{name}.sourceData", source)
    if isinstance(source, dict):
        checks.non_empty_str(f"{name}.sourceData.type", source.get("type"))


def merge_source(sources: list[dict[str, Any]], new_source: dict[str, Any]) -> list[dict[str, Any]]:
    """Return *sources* with *new_source* replacing its same-type record in place.

    A record whose type has not been seen yet is appended.
    """
    source_type = new_source.get("type")
    updated = list(sources)
    for index, existing in enumerate(updated):
        if existing.get("type") == source_type:
            if existing != new_source:
                logger.debug("replacing %s source record: %r", source_type, existing)
            updated[index] = dict(new_source)
            return updated
    updated.append(dict(new_source))
    return updated


def merge(
    existing_endpoints: list[Endpoint],
    new_discoveries: list[Discovery | dict[str, Any]],
) -> list[Endpoint]:
    """Fold *new_discoveries* into *existing_endpoints* keyed by endpoint id.

    Unseen ids become new endpoints with no probe.  Known ids only have their
    provenance updated; probe data is never touched here.  The inputs are not
    mutated.

    Raises:
        ValidationError: either argument is missing or not a list, an item
            is of the wrong kind, or a discovery lacks a url or a typed
            ``sourceData`` object.  Every violation is listed.
    """
    checks = Checks()
    checks.is_list("existingEndpoints", existing_endpoints)
    checks.is_list("newDiscoveries", new_discoveries)
    checks.raise_if_any()

    for index, endpoint in enumerate(existing_endpoints):
        checks.require(
            isinstance(endpoint, Endpoint),
            f"existingEndpoints[{index}]: Must be an Endpoint",
        )
    for index, item in enumerate(new_discoveries):
        _check_discovery(checks, f"newDiscoveries[{index}]", item)
    checks.raise_if_any()

    discoveries = [_as_discovery(d) for d in new_discoveries]

    by_id: dict[str, Endpoint] = {}
    for endpoint in existing_endpoints:
        by_id[endpoint.id] = Endpoint(
            id=endpoint.id,
            url=endpoint.url,
            protocol=endpoint.protocol,
            sources=list(endpoint.sources),
            probe=endpoint.probe,
        )

    for discovery in discoveries:
        url = normalize_url(discovery.url)
        ep_id = endpoint_id(url)
        endpoint = by_id.get(ep_id)
        if endpoint is None:
            by_id[ep_id] = Endpoint(
                id=ep_id,
                url=url,
                protocol=discovery.protocol,
                sources=[dict(discovery.source_data)],
                probe=None,
            )
        else:
            endpoint.sources = merge_source(endpoint.sources, discovery.source_data)

    return list(by_id.values())


def empty_stats() -> dict[str, Any]:
    return {
        "total": 0,
        "reachable": 0,
        "withX402": 0,
        "withTools": 0,
        "bySource": {source_type: 0 for source_type in SOURCE_TYPES},
        "byProtocol": {protocol: 0 for protocol in PROTOCOLS},
    }


def compute_stats(endpoints: Iterable[Endpoint]) -> dict[str, Any]:
    """Aggregate counters over *endpoints* in a single pass.

    Probe-derived counters only consider endpoints whose last probe
    succeeded.  Source and protocol types outside the known sets are ignored.
    """
    stats = empty_stats()
    by_source = stats["bySource"]
    by_protocol = stats["byProtocol"]

    for endpoint in endpoints:
        stats["total"] += 1
        if endpoint.protocol in by_protocol:
            by_protocol[endpoint.protocol] += 1
        for source in endpoint.sources:
            source_type = source.get("type")
            if source_type in by_source:
                by_source[source_type] += 1

        probe = endpoint.probe
        if probe is None or probe.status is not True:
            continue
        categories = probe.categories
        if categories.get("isReachable") is True:
            stats["reachable"] += 1
        if categories.get("supportsX402") is True:
            stats["withX402"] += 1
        if categories.get("hasTools") is True or categories.get("hasSkills") is True:
            stats["withTools"] += 1

    return stats
