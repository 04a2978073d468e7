"""Catalog data model: endpoints, probe results and discoveries.

Objects serialise to the camelCase JSON shape stored in ``endpoints.json``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

PROTOCOLS: tuple[str, ...] = ("mcp", "a2a")
SOURCE_TYPES: tuple[str, ...] = ("mcp-registry", "erc8004", "bazaar", "manual")


def _mapping(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and ``Z`` suffix."""
    now = datetime.now(tz=timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are assumed UTC.

    Raises:
        TypeError: *value* is not a string.
        ValueError: *value* is not ISO-8601.
    """
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be a string, got {type(value).__name__}")
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class ProbeResult:
    """Outcome of one verification attempt. Replaced wholesale on re-probe."""

    timestamp: str
    status: bool
    categories: dict[str, Any] = field(default_factory=dict)
    summary: dict[str, Any] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, message: str, categories: dict[str, Any] | None = None) -> "ProbeResult":
        cats = {"isReachable": False}
        if categories:
            cats.update(categories)
            cats["isReachable"] = False
        return cls(
            timestamp=utc_now_iso(),
            status=False,
            categories=cats,
            summary={},
            messages=[message],
        )

    @property
    def is_reachable(self) -> bool:
        return self.status is True and self.categories.get("isReachable") is True

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "status": self.status,
            "categories": dict(self.categories),
            "summary": dict(self.summary),
            "messages": list(self.messages),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProbeResult":
        """Rebuild from stored JSON; fields of the wrong type fall back to empty values."""
        timestamp = data.get("timestamp")
        messages = data.get("messages")
        return cls(
            timestamp=timestamp if isinstance(timestamp, str) else "",
            status=data.get("status") is True,
            categories=_mapping(data.get("categories")),
            summary=_mapping(data.get("summary")),
            messages=[str(m) for m in messages] if isinstance(messages, list) else [],
        )


@dataclass
class Endpoint:
    """A discovered address with its provenance and latest verification."""

    id: str
    url: str
    protocol: str
    sources: list[dict[str, Any]] = field(default_factory=list)
    probe: ProbeResult | None = None

    @property
    def source_types(self) -> list[str]:
        return [s.get("type") for s in self.sources]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "protocol": self.protocol,
            "sources": [dict(s) for s in self.sources],
            "probe": self.probe.to_dict() if self.probe is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Endpoint":
        probe = data.get("probe")
        protocol = data.get("protocol")
        sources = data.get("sources")
        return cls(
            id=data["id"],
            url=data["url"],
            protocol=protocol if isinstance(protocol, str) and protocol else "mcp",
            sources=[dict(s) for s in sources if isinstance(s, dict)] if isinstance(sources, list) else [],
            probe=ProbeResult.from_dict(probe) if isinstance(probe, dict) else None,
        )


@dataclass
class Discovery:
    """One (url, protocol, provenance) triple reported by a collector."""

    url: str
    protocol: str
    source_data: dict[str, Any]

    @property
    def source_type(self) -> str | None:
        return self.source_data.get("type")

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "protocol": self.protocol, "sourceData": dict(self.source_data)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Discovery":
        return cls(
            url=data.get("url"),
            protocol=data.get("protocol") or "mcp",
            source_data=_mapping(data.get("sourceData")),
        )
