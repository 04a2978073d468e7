"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from beacon.validation import Checks

DEFAULT_MCP_REGISTRY_URL = "https://registry.modelcontextprotocol.io"
DEFAULT_BAZAAR_URL = "https://api.cdp.coinbase.com/platform/v2/x402/discovery"
ALCHEMY_URL_TEMPLATE = "https://eth-mainnet.g.alchemy.com/v2/{key}"
HISTORY_RETENTION_DAYS = 90


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class MonitorConfig:
    data_dir: Path = Path("./data")
    docs_dir: Path | None = None
    probe_max_concurrency: int = 5
    probe_timeout_ms: int = 15000
    probe_max_age_days: float = 7
    force_reprobe: bool = False
    mcp_registry_url: str = DEFAULT_MCP_REGISTRY_URL
    bazaar_url: str = DEFAULT_BAZAAR_URL
    alchemy_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 5200

    @property
    def resolved_docs_dir(self) -> Path:
        if self.docs_dir is not None:
            return self.docs_dir
        return self.data_dir.parent / "docs"

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Build a config from ``BEACON_*`` / ``PROBE_*`` environment variables.

        Numeric values that fail to parse are kept as raw strings so that
        :meth:`validate` can report them alongside any other violations.
        """
        docs = os.environ.get("BEACON_DOCS_DIR")
        return cls(
            data_dir=Path(os.environ.get("BEACON_DATA_DIR", "./data")),
            docs_dir=Path(docs) if docs else None,
            probe_max_concurrency=_number(os.environ.get("PROBE_MAX_CONCURRENCY", "5"), int),
            probe_timeout_ms=_number(os.environ.get("PROBE_TIMEOUT_MS", "15000"), int),
            probe_max_age_days=_number(os.environ.get("PROBE_MAX_AGE_DAYS", "7"), float),
            force_reprobe=_env_bool("FORCE_REPROBE"),
            mcp_registry_url=os.environ.get("MCP_REGISTRY_URL", DEFAULT_MCP_REGISTRY_URL),
            bazaar_url=os.environ.get("BAZAAR_URL", DEFAULT_BAZAAR_URL),
            alchemy_url=_alchemy_url(),
            host=os.environ.get("BEACON_HOST", "0.0.0.0"),
            port=_number(os.environ.get("BEACON_PORT", "5200"), int),
        )

    def with_overrides(self, **changes) -> "MonitorConfig":
        """Return a copy with every non-``None`` keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> None:
        checks = Checks()
        checks.positive_number("probeMaxConcurrency", self.probe_max_concurrency, integer=True)
        checks.positive_number("probeTimeoutMs", self.probe_timeout_ms)
        checks.positive_number("probeMaxAgeDays", self.probe_max_age_days)
        checks.non_empty_str("dataDir", str(self.data_dir) if self.data_dir is not None else None)
        checks.non_empty_str("mcpRegistryUrl", self.mcp_registry_url)
        checks.non_empty_str("bazaarUrl", self.bazaar_url)
        if self.alchemy_url is not None:
            checks.non_empty_str("alchemyUrl", self.alchemy_url)
        checks.positive_number("port", self.port, integer=True)
        checks.raise_if_any()


def _alchemy_url() -> str | None:
    """``ALCHEMY_URL`` wins; otherwise build the mainnet URL from ``ALCHEMY_API_KEY``."""
    url = os.environ.get("ALCHEMY_URL")
    if url:
        return url
    key = os.environ.get("ALCHEMY_API_KEY", "").strip()
    return ALCHEMY_URL_TEMPLATE.format(key=key) if key else None


def _number(raw: str, kind: type):
    try:
        return kind(raw)
    except (TypeError, ValueError):
        return raw
