"""Beacon — read-only catalog API.

Exposes:
  GET  /health          — liveness check
  GET  /api/endpoints   — dashboard projection (optional ``protocol`` filter)
  GET  /api/stats       — aggregate stats of the stored catalog
  GET  /api/history     — daily history entries, oldest first
  POST /api/validate    — probe a single URL with every verifier

Start with::

    python -m beacon serve
    # or
    uvicorn beacon.server:app --host 0.0.0.0 --port 5200
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from beacon.config import MonitorConfig
from beacon.dashboard import build_dashboard_data
from beacon.prober import Verifier, default_verifiers
from beacon.registry import normalize_url
from beacon.state import StateStore

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

app = FastAPI(title="Beacon", version="1.0.0")

_config: MonitorConfig | None = None
_store: StateStore | None = None
_verifiers: Mapping[str, Verifier] | None = None


def _get_config() -> MonitorConfig:
    global _config
    if _config is None:
        _config = MonitorConfig.from_env()
    return _config


def _get_store() -> StateStore:
    global _store
    if _store is None:
        _store = StateStore(_get_config().data_dir)
    return _store


def _get_verifiers() -> Mapping[str, Verifier]:
    global _verifiers
    if _verifiers is None:
        _verifiers = default_verifiers()
    return _verifiers


def configure(
    config: MonitorConfig,
    store: StateStore | None = None,
    verifiers: Mapping[str, Verifier] | None = None,
) -> None:
    """Point the app at *config* (used by the CLI and tests)."""
    global _config, _store, _verifiers
    _config = config
    _store = store or StateStore(config.data_dir)
    _verifiers = verifiers


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class ValidateRequest(BaseModel):
    url: str


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/endpoints")
async def list_endpoints(protocol: str | None = Query(default=None)):
    result = await asyncio.to_thread(_get_store().load_endpoints)
    data = build_dashboard_data(result.data)
    if protocol:
        data["endpoints"] = [e for e in data["endpoints"] if e["protocol"] == protocol]
    return data


@app.get("/api/stats")
async def stats():
    result = await asyncio.to_thread(_get_store().load_endpoints)
    return {"updatedAt": result.data.get("updatedAt"), "stats": result.data.get("stats") or {}}


@app.get("/api/history")
async def history():
    entries = await asyncio.to_thread(_get_store().load_history)
    return {"entries": entries}


@app.post("/api/validate")
async def validate(request: ValidateRequest):
    url = request.url.strip()
    if not url.lower().startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="Only http:// and https:// URLs are allowed")

    timeout_ms = _get_config().probe_timeout_ms
    verifiers = _get_verifiers()
    protocols = list(verifiers)
    results = await asyncio.gather(
        *(verifiers[p].verify(url, timeout_ms) for p in protocols),
        return_exceptions=True,
    )
    body: dict[str, Any] = {"url": normalize_url(url)}
    for protocol, result in zip(protocols, results):
        if isinstance(result, BaseException):
            logger.warning("validate: %s verifier raised %r", protocol, result)
            body[protocol] = {"status": False, "messages": [str(result)]}
        else:
            body[protocol] = result.to_dict()
    return body


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main(config: MonitorConfig | None = None):
    import uvicorn
    config = config or _get_config()
    configure(config)
    logger.info("Starting Beacon API on %s:%d (data: %s)", config.host, config.port, config.data_dir)
    uvicorn.run(app, host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
