"""Tests for the read-only catalog API."""

from __future__ import annotations

import pytest

from beacon import server
from beacon.config import MonitorConfig
from beacon.models import ProbeResult, utc_now_iso
from beacon.prober import Verifier
from beacon.state import StateStore


class StaticVerifier(Verifier):
    def __init__(self, protocol, status=True, raises=None):
        super().__init__()
        self.protocol = protocol
        self.status = status
        self.raises = raises
        self.calls = []

    async def verify(self, url, timeout_ms):
        self.calls.append((url, timeout_ms))
        if self.raises is not None:
            raise self.raises
        return ProbeResult(timestamp=utc_now_iso(), status=self.status, categories={"isReachable": self.status})


@pytest.fixture()
def store(tmp_path):
    store = StateStore(tmp_path / "data")
    store.write_endpoints(
        {
            "version": 1,
            "updatedAt": "2026-10-18T00:00:00.000Z",
            "stats": {"total": 2, "reachable": 1},
            "endpoints": [
                {"id": "ep_a", "url": "https://a.example", "protocol": "mcp", "sources": [{"type": "manual"}]},
                {
                    "id": "ep_b",
                    "url": "https://b.example",
                    "protocol": "a2a",
                    "sources": [{"type": "erc8004"}],
                    "probe": {
                        "timestamp": "2026-10-18T00:00:00.000Z",
                        "status": True,
                        "categories": {"isReachable": True},
                    },
                },
            ],
        }
    )
    store.write_history({"date": "2026-10-17", "total": 1})
    store.write_history({"date": "2026-10-18", "total": 2})
    return store


@pytest.fixture()
def verifiers():
    return {"mcp": StaticVerifier("mcp"), "a2a": StaticVerifier("a2a", raises=RuntimeError("card parser broke"))}


@pytest.fixture()
def client(tmp_path, store, verifiers):
    from fastapi.testclient import TestClient

    config = MonitorConfig(data_dir=tmp_path / "data", probe_timeout_ms=2500)
    server.configure(config, store=store, verifiers=verifiers)
    yield TestClient(server.app)
    server._config = None
    server._store = None
    server._verifiers = None


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_endpoints_are_projected_and_sorted(client):
    data = client.get("/api/endpoints").json()
    assert [e["id"] for e in data["endpoints"]] == ["ep_b", "ep_a"]
    assert data["endpoints"][0]["isReachable"] is True


def test_endpoints_protocol_filter(client):
    data = client.get("/api/endpoints", params={"protocol": "mcp"}).json()
    assert [e["id"] for e in data["endpoints"]] == ["ep_a"]


def test_stats(client):
    data = client.get("/api/stats").json()
    assert data["stats"]["total"] == 2
    assert data["updatedAt"] == "2026-10-18T00:00:00.000Z"


def test_stats_without_catalog(tmp_path):
    from fastapi.testclient import TestClient

    server.configure(MonitorConfig(data_dir=tmp_path / "empty"), verifiers={})
    try:
        data = TestClient(server.app).get("/api/stats").json()
    finally:
        server._config = server._store = server._verifiers = None
    assert data["stats"]["total"] == 0
    assert data["updatedAt"] is None


def test_history(client):
    entries = client.get("/api/history").json()["entries"]
    assert [e["date"] for e in entries] == ["2026-10-17", "2026-10-18"]


def test_validate_runs_every_verifier(client, verifiers):
    resp = client.post("/api/validate", json={"url": " HTTPS://New.Example/mcp/ "})
    assert resp.status_code == 200
    body = resp.json()
    assert body["url"] == "https://new.example/mcp"
    assert body["mcp"]["status"] is True
    assert body["a2a"]["status"] is False
    assert "card parser broke" in body["a2a"]["messages"][0]
    assert verifiers["mcp"].calls == [("HTTPS://New.Example/mcp/", 2500)]


@pytest.mark.parametrize("url", ["ftp://files.example", "file:///etc/passwd", "not a url"])
def test_validate_rejects_non_http(client, url):
    resp = client.post("/api/validate", json={"url": url})
    assert resp.status_code == 400


def test_validate_requires_url(client):
    assert client.post("/api/validate", json={}).status_code == 422
