"""Manually curated endpoints from ``<data>/manual.json``.

File shape::

    {"endpoints": [{"url": "...", "protocol": "mcp", "name": "...",
                    "description": "...", "addedAt": "..."}]}
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from beacon.collectors.base import CollectResult, Collector
from beacon.models import Discovery, utc_now_iso

logger = logging.getLogger(__name__)


class ManualCollector(Collector):
    source_type = "manual"

    def __init__(self, data_dir: Path | str) -> None:
        super().__init__()
        self.path = Path(data_dir) / "manual.json"

    async def collect(self, cursor: dict[str, Any]) -> CollectResult:
        if not self.path.exists():
            logger.debug("no manual endpoint file at %s", self.path)
            return CollectResult(status=True)
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except (OSError, ValueError) as exc:
            return CollectResult(status=False, error=f"manual.json unreadable: {exc}")

        entries = data.get("endpoints") if isinstance(data, dict) else None
        now = utc_now_iso()
        discoveries: list[Discovery] = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            url = entry.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            discoveries.append(
                Discovery(
                    url=url,
                    protocol=entry.get("protocol") or "mcp",
                    source_data={
                        "type": self.source_type,
                        "name": entry.get("name"),
                        "description": entry.get("description"),
                        "addedAt": entry.get("addedAt") or now,
                        "discoveredAt": now,
                    },
                )
            )

        return CollectResult(
            status=True,
            discoveries=discoveries,
            cursor_updates={"totalFetched": len(discoveries)},
            total_fetched=len(discoveries),
        )
