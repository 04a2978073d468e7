"""Dashboard projection of the written catalog (``<docs>/data.json``)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from beacon.state.store import write_json_atomic
from beacon.validation import Checks

DASHBOARD_FILE = "data.json"


def _entry(endpoint: dict[str, Any]) -> dict[str, Any]:
    sources = endpoint.get("sources")
    sources = [s for s in sources if isinstance(s, dict)] if isinstance(sources, list) else []
    probe = endpoint.get("probe")
    entry: dict[str, Any] = {
        "id": endpoint.get("id"),
        "url": endpoint.get("url"),
        "protocol": endpoint.get("protocol"),
        "sourceTypes": [s.get("type") for s in sources],
        "sourceCount": len(sources),
        "sources": sources,
        "isReachable": False,
        "supportsX402": False,
        "probe": None,
    }
    if isinstance(probe, dict):
        categories = probe.get("categories")
        categories = categories if isinstance(categories, dict) else {}
        entry["isReachable"] = categories.get("isReachable") is True
        entry["supportsX402"] = categories.get("supportsX402") is True
        entry["probe"] = {
            "timestamp": probe.get("timestamp"),
            "status": probe.get("status"),
            "categories": categories,
            "summary": probe.get("summary") or {},
            "messages": probe.get("messages") or [],
        }
    return entry


def build_dashboard_data(catalog: dict[str, Any]) -> dict[str, Any]:
    """Project *catalog* (the ``endpoints.json`` document) for the dashboard.

    Endpoints are ordered x402-capable first, then reachable, then by number
    of sources, descending.  Ties keep catalog order.
    """
    checks = Checks()
    checks.is_mapping("endpointsData", catalog)
    if isinstance(catalog, dict):
        checks.is_list("endpointsData.endpoints", catalog.get("endpoints"))
    checks.raise_if_any()

    entries = [_entry(ep) for ep in catalog["endpoints"] if isinstance(ep, dict)]
    entries.sort(key=lambda e: (not e["supportsX402"], not e["isReachable"], -e["sourceCount"]))
    return {
        "updatedAt": catalog.get("updatedAt"),
        "stats": catalog.get("stats") or {},
        "endpoints": entries,
    }


def write_dashboard_data(docs_dir: Path | str, data: dict[str, Any]) -> Path:
    path = Path(docs_dir) / DASHBOARD_FILE
    write_json_atomic(path, data)
    return path
