"""End-to-end tests for the pipeline orchestrator with fake collectors and verifiers."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from beacon.collectors import CollectResult, Collector, Erc8004Collector, default_collectors
from beacon.config import MonitorConfig
from beacon.models import Discovery, ProbeResult, utc_now_iso
from beacon.monitor import Monitor, endpoints_from_catalog
from beacon.prober import Verifier
from beacon.state import StateStore
from beacon.validation import ValidationError


class FakeCollector(Collector):
    def __init__(self, source_type, urls=(), fail=None, raises=None, cursor_updates=None):
        super().__init__()
        self.source_type = source_type
        self.urls = list(urls)
        self.fail = fail
        self.raises = raises
        self.cursor_updates = cursor_updates or {"totalFetched": len(self.urls)}
        self.seen_cursor = None

    async def collect(self, cursor):
        self.seen_cursor = cursor
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return CollectResult(status=False, error=self.fail)
        discoveries = [
            Discovery(url=u, protocol="mcp", source_data={"type": self.source_type, "discoveredAt": "T"})
            for u in self.urls
        ]
        return CollectResult(
            status=True,
            discoveries=discoveries,
            cursor_updates=dict(self.cursor_updates),
            total_fetched=len(self.urls),
        )


class FakeVerifier(Verifier):
    protocol = "mcp"

    def __init__(self, unreachable=()):
        super().__init__()
        self.unreachable = set(unreachable)
        self.calls: list[str] = []

    async def verify(self, url, timeout_ms):
        self.calls.append(url)
        ok = url not in self.unreachable
        return ProbeResult(
            timestamp=utc_now_iso(),
            status=ok,
            categories={"isReachable": ok, "supportsX402": ok and "paid" in url},
        )


@pytest.fixture()
def config(tmp_path):
    return MonitorConfig(data_dir=tmp_path / "data", docs_dir=tmp_path / "docs")


def _read(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestRun:
    @pytest.mark.asyncio
    async def test_full_run_writes_every_artifact(self, config):
        verifier = FakeVerifier(unreachable={"https://down.example"})
        monitor = Monitor(
            config,
            collectors=[
                FakeCollector("bazaar", ["https://paid.example/", "https://down.example"]),
                FakeCollector("manual", ["HTTPS://PAID.EXAMPLE"]),
            ],
            verifiers={"mcp": verifier},
        )

        report = await monitor.run()

        assert report.status is True
        assert report.new_endpoints == 2
        assert report.probed_count == 2
        assert report.collector_errors == {}
        assert report.stats["total"] == 2
        assert report.stats["reachable"] == 1
        assert report.stats["withX402"] == 1
        assert report.stats["bySource"]["bazaar"] == 2
        assert report.stats["bySource"]["manual"] == 1

        catalog = _read(config.data_dir / "endpoints.json")
        assert [ep["url"] for ep in catalog["endpoints"]] == ["https://paid.example", "https://down.example"]
        assert [s["type"] for s in catalog["endpoints"][0]["sources"]] == ["bazaar", "manual"]

        state = _read(config.data_dir / "state.json")
        assert state["updatedAt"]
        assert state["cursors"]["bazaar"]["totalFetched"] == 2
        assert state["cursors"]["bazaar"]["lastFetchedAt"]
        assert state["cursors"]["erc8004"]["lastProcessedBlock"] == 24339925

        history = list((config.data_dir / "history").glob("*.json"))
        assert len(history) == 1
        entry = _read(history[0])
        assert entry["total"] == 2
        assert entry["newEndpoints"] == 2
        assert entry["probedThisRun"] == 2
        assert history[0].stem == entry["date"]

        dashboard = _read(config.docs_dir / "data.json")
        assert dashboard["endpoints"][0]["url"] == "https://paid.example"

        assert report.log[0] == "Phase 1: Loading state..."
        assert report.log[-1] == "Done."
        assert "2 total" in report.summary()

    @pytest.mark.asyncio
    async def test_failed_collector_is_isolated(self, config):
        broken = FakeCollector("mcp-registry", raises=RuntimeError("registry down"))
        failing = FakeCollector("bazaar", fail="Bazaar API returned 500")
        working = FakeCollector("manual", ["https://a.example"])
        monitor = Monitor(config, collectors=[broken, failing, working], verifiers={"mcp": FakeVerifier()})

        report = await monitor.run()

        assert report.status is True
        assert report.stats["total"] == 1
        assert set(report.collector_errors) == {"mcp-registry", "bazaar"}
        assert "registry down" in report.collector_errors["mcp-registry"]
        assert any("bazaar: FAILED - Bazaar API returned 500" in line for line in report.log)

        cursors = _read(config.data_dir / "state.json")["cursors"]
        assert cursors["mcp-registry"]["lastFetchedAt"] is None
        assert cursors["bazaar"]["lastFetchedAt"] is None
        assert cursors["manual"]["lastFetchedAt"] is not None

    @pytest.mark.asyncio
    async def test_collectors_receive_their_cursor(self, config):
        store = StateStore(config.data_dir)
        state = store.load_state().data
        state["cursors"]["bazaar"]["lastOffset"] = 400
        store.save_state(state)

        collector = FakeCollector("bazaar", cursor_updates={"lastOffset": 500, "totalFetched": 1})
        await Monitor(config, collectors=[collector], verifiers={"mcp": FakeVerifier()}).run()

        assert collector.seen_cursor["lastOffset"] == 400
        assert _read(config.data_dir / "state.json")["cursors"]["bazaar"]["lastOffset"] == 500

    @pytest.mark.asyncio
    async def test_block_cursor_advances_only_on_success(self, config):
        def latest(block):
            def handler(request):
                body = json.loads(request.content)
                if body["method"] == "eth_blockNumber":
                    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": hex(block)})
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": []})

            return handler

        def run_with(handler):
            collector = Erc8004Collector("https://rpc.example", transport=httpx.MockTransport(handler))
            return Monitor(config, collectors=[collector], verifiers={"mcp": FakeVerifier()}).run()

        await run_with(latest(24340000))
        cursor = _read(config.data_dir / "state.json")["cursors"]["erc8004"]
        assert cursor["lastProcessedBlock"] == 24340000
        fetched_at = cursor["lastFetchedAt"]
        assert fetched_at is not None

        report = await run_with(lambda request: httpx.Response(503))
        cursor = _read(config.data_dir / "state.json")["cursors"]["erc8004"]
        assert "Alchemy RPC returned 503" in report.collector_errors["erc8004"]
        assert cursor["lastProcessedBlock"] == 24340000
        assert cursor["lastFetchedAt"] == fetched_at

    def test_block_collector_registered_only_with_rpc_url(self, config):
        assert [c.source_type for c in default_collectors(config)] == ["mcp-registry", "bazaar", "manual"]
        with_rpc = config.with_overrides(alchemy_url="https://rpc.example")
        assert [c.source_type for c in default_collectors(with_rpc)] == [
            "mcp-registry",
            "erc8004",
            "bazaar",
            "manual",
        ]

    @pytest.mark.asyncio
    async def test_invalid_config_touches_nothing(self, tmp_path):
        config = MonitorConfig(data_dir=tmp_path / "data", docs_dir=tmp_path / "docs", probe_max_concurrency=0)
        collector = FakeCollector("manual", ["https://a.example"])
        monitor = Monitor(config, collectors=[collector], verifiers={"mcp": FakeVerifier()})

        with pytest.raises(ValidationError, match="probeMaxConcurrency"):
            await monitor.run()

        assert collector.seen_cursor is None
        assert not (tmp_path / "data").exists()
        assert not (tmp_path / "docs").exists()

    @pytest.mark.asyncio
    async def test_second_run_skips_fresh_probes(self, config):
        verifier = FakeVerifier()
        collectors = [FakeCollector("manual", ["https://a.example", "https://b.example"])]
        await Monitor(config, collectors=collectors, verifiers={"mcp": verifier}).run()
        assert len(verifier.calls) == 2

        report = await Monitor(config, collectors=collectors, verifiers={"mcp": verifier}).run()
        assert report.new_endpoints == 0
        assert report.probed_count == 0
        assert len(verifier.calls) == 2
        assert report.stats["reachable"] == 2

    @pytest.mark.asyncio
    async def test_stale_probes_are_refreshed(self, config):
        old = (datetime.now(tz=timezone.utc) - timedelta(days=30)).isoformat()
        store = StateStore(config.data_dir)
        store.write_endpoints(
            {
                "version": 1,
                "updatedAt": old,
                "stats": {},
                "endpoints": [
                    {
                        "id": "ep_00000001",
                        "url": "https://old.example",
                        "protocol": "mcp",
                        "sources": [{"type": "manual"}],
                        "probe": {"timestamp": old, "status": False, "categories": {"isReachable": False}},
                    }
                ],
            }
        )
        verifier = FakeVerifier()
        report = await Monitor(config, collectors=[], verifiers={"mcp": verifier}).run()

        assert verifier.calls == ["https://old.example"]
        assert report.stats["reachable"] == 1

    @pytest.mark.asyncio
    async def test_cursors_of_wrong_shape_fall_back_to_defaults(self, config):
        config.data_dir.mkdir(parents=True)
        (config.data_dir / "state.json").write_text(json.dumps({"cursors": []}), encoding="utf-8")

        report = await Monitor(
            config,
            collectors=[FakeCollector("manual", ["https://a.example"])],
            verifiers={"mcp": FakeVerifier()},
        ).run()

        assert report.status is True
        cursors = _read(config.data_dir / "state.json")["cursors"]
        assert cursors["erc8004"]["lastProcessedBlock"] == 24339925
        assert cursors["manual"]["totalFetched"] == 1

    @pytest.mark.asyncio
    async def test_corrupt_catalog_fields_do_not_abort_run(self, config):
        StateStore(config.data_dir).write_endpoints(
            {
                "version": 1,
                "endpoints": [
                    {
                        "id": "ep_00000001",
                        "url": "https://epoch.example",
                        "protocol": "mcp",
                        "sources": [{"type": "manual"}],
                        "probe": {"timestamp": 1700000000000, "status": True, "categories": []},
                    },
                    {"id": "ep_00000002", "url": "https://flat.example", "protocol": 7, "sources": "manual"},
                    {"id": 3, "url": "https://bad-id.example"},
                ],
            }
        )
        verifier = FakeVerifier()

        report = await Monitor(config, collectors=[], verifiers={"mcp": verifier}).run()

        assert report.status is True
        assert sorted(verifier.calls) == ["https://epoch.example", "https://flat.example"]
        catalog = _read(config.data_dir / "endpoints.json")
        assert [ep["id"] for ep in catalog["endpoints"]] == ["ep_00000001", "ep_00000002"]
        flat = catalog["endpoints"][1]
        assert flat["sources"] == []
        assert flat["protocol"] == "mcp"
        assert isinstance(catalog["endpoints"][0]["probe"]["timestamp"], str)

    @pytest.mark.asyncio
    async def test_corrupt_catalog_starts_fresh(self, config):
        config.data_dir.mkdir(parents=True)
        (config.data_dir / "endpoints.json").write_text("{oops", encoding="utf-8")
        monitor = Monitor(
            config,
            collectors=[FakeCollector("manual", ["https://a.example"])],
            verifiers={"mcp": FakeVerifier()},
        )
        report = await monitor.run()
        assert report.status is True
        assert report.stats["total"] == 1
        assert any("Using defaults" in line for line in report.log)


class TestReprobe:
    @pytest.mark.asyncio
    async def test_force_reprobes_fresh_endpoints(self, config):
        verifier = FakeVerifier()
        collectors = [FakeCollector("manual", ["https://a.example"])]
        await Monitor(config, collectors=collectors, verifiers={"mcp": verifier}).run()

        monitor = Monitor(config, collectors=[], verifiers={"mcp": verifier})
        unforced = await monitor.reprobe()
        assert unforced.probed_count == 0

        forced = await monitor.reprobe(force=True)
        assert forced.probed_count == 1
        assert verifier.calls == ["https://a.example", "https://a.example"]
        assert (config.docs_dir / "data.json").exists()

    @pytest.mark.asyncio
    async def test_force_from_config(self, config):
        verifier = FakeVerifier()
        await Monitor(
            config,
            collectors=[FakeCollector("manual", ["https://a.example"])],
            verifiers={"mcp": verifier},
        ).run()

        forced_config = config.with_overrides(force_reprobe=True)
        report = await Monitor(forced_config, collectors=[], verifiers={"mcp": verifier}).reprobe()
        assert report.probed_count == 1


def test_endpoints_from_catalog_skips_malformed():
    catalog = {
        "endpoints": [
            {"id": "ep_1", "url": "https://a.example", "protocol": "a2a"},
            {"url": "https://no-id.example"},
            "not-a-dict",
        ]
    }
    endpoints = endpoints_from_catalog(catalog)
    assert [ep.id for ep in endpoints] == ["ep_1"]
    assert endpoints[0].protocol == "a2a"
