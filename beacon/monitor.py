"""Pipeline orchestrator.

One run walks a fixed sequence of phases::

    load → collect → merge → probe → persist → project

Collector and probe failures are logged and reflected in the stats; they
never abort the run.  Parameter validation failures raise before any
collector runs, and filesystem errors while persisting propagate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from beacon.collectors import Collector, CollectResult, default_collectors
from beacon.config import MonitorConfig
from beacon.dashboard import build_dashboard_data, write_dashboard_data
from beacon.models import Discovery, Endpoint, utc_now_iso
from beacon.prober import ProbeScheduler, Verifier, default_verifiers
from beacon.registry import compute_stats, merge
from beacon.state import Defaulted, StateStore

logger = logging.getLogger(__name__)

CATALOG_VERSION = 1


@dataclass
class RunReport:
    status: bool
    stats: dict[str, Any] = field(default_factory=dict)
    new_endpoints: int = 0
    probed_count: int = 0
    collector_errors: dict[str, str] = field(default_factory=dict)
    log: list[str] = field(default_factory=list)

    def summary(self) -> str:
        s = self.stats
        return (
            f"{s.get('total', 0)} total, {s.get('reachable', 0)} reachable, "
            f"{s.get('withX402', 0)} x402, {self.new_endpoints} new, "
            f"{self.probed_count} probed"
        )


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def endpoints_from_catalog(catalog: dict[str, Any]) -> list[Endpoint]:
    """Rebuild :class:`Endpoint` objects, skipping entries without id or url."""
    endpoints: list[Endpoint] = []
    raw_endpoints = catalog.get("endpoints")
    for raw in raw_endpoints if isinstance(raw_endpoints, list) else []:
        if not isinstance(raw, dict) or not _non_empty_str(raw.get("id")) or not _non_empty_str(raw.get("url")):
            logger.warning("dropping malformed catalog entry: %r", raw)
            continue
        endpoints.append(Endpoint.from_dict(raw))
    return endpoints


def build_catalog(endpoints: list[Endpoint]) -> dict[str, Any]:
    return {
        "version": CATALOG_VERSION,
        "updatedAt": utc_now_iso(),
        "stats": compute_stats(endpoints),
        "endpoints": [ep.to_dict() for ep in endpoints],
    }


class Monitor:
    """Runs the collection pipeline against one data directory.

    Args:
        config:      Run parameters.
        collectors:  Registration-ordered collectors (defaults to all built-ins).
        verifiers:   Protocol → verifier map (defaults to MCP + A2A).
        store:       State store (defaults to one rooted at ``config.data_dir``).
    """

    def __init__(
        self,
        config: MonitorConfig,
        collectors: list[Collector] | None = None,
        verifiers: Mapping[str, Verifier] | None = None,
        store: StateStore | None = None,
    ) -> None:
        self.config = config
        self.collectors = collectors if collectors is not None else default_collectors(config)
        self.verifiers = verifiers if verifiers is not None else default_verifiers()
        self.store = store or StateStore(config.data_dir)

    # ------------------------------------------------------------------ #
    # Full run                                                             #
    # ------------------------------------------------------------------ #

    async def run(self) -> RunReport:
        """Execute every phase once.

        Raises:
            ValidationError: the configuration is invalid (nothing is touched).
            OSError: the catalog, state or history could not be written.
        """
        self.config.validate()
        scheduler = self._scheduler()
        report = RunReport(status=False)

        self._phase(report, "Phase 1: Loading state...")
        state_result = await asyncio.to_thread(self.store.load_state)
        catalog_result = await asyncio.to_thread(self.store.load_endpoints)
        state = state_result.data
        for result in (state_result, catalog_result):
            if isinstance(result, Defaulted):
                self._phase(report, f"  Using defaults: {result.reason}")
        existing = endpoints_from_catalog(catalog_result.data)
        self._phase(report, f"  Loaded {len(existing)} existing endpoints")

        self._phase(report, "Phase 2: Collecting from registries...")
        discoveries = await self._collect(state, report)
        self._phase(report, f"  Total discoveries: {len(discoveries)}")

        self._phase(report, "Phase 3: Merging into unified list...")
        merged = merge(existing, discoveries)
        report.new_endpoints = len(merged) - len(existing)
        self._phase(report, f"  Merged: {len(merged)} total ({report.new_endpoints} new)")

        self._phase(report, "Phase 4: Probing endpoints...")
        merged, report.probed_count = await scheduler.probe_all(merged)
        self._phase(report, f"  Probed: {report.probed_count} endpoints")

        self._phase(report, "Phase 5: Writing data...")
        catalog = build_catalog(merged)
        report.stats = catalog["stats"]
        await asyncio.to_thread(self.store.write_endpoints, catalog)
        state["probeMaxAgeDays"] = self.config.probe_max_age_days
        await asyncio.to_thread(self.store.save_state, state)
        entry = self._history_entry(catalog, report)
        await asyncio.to_thread(self.store.write_history, entry)
        self._phase(report, f"  Written: endpoints.json, state.json, history/{entry['date']}.json")

        self._phase(report, "Phase 6: Generating dashboard data...")
        await self._project(catalog)
        self._phase(report, f"  Written: {self.config.resolved_docs_dir.name}/data.json")

        report.status = True
        self._phase(report, "Done.")
        return report

    # ------------------------------------------------------------------ #
    # Probe-only run                                                       #
    # ------------------------------------------------------------------ #

    async def reprobe(self, force: bool | None = None) -> RunReport:
        """Probe the stored catalog without collecting; rewrite catalog and dashboard."""
        self.config.validate()
        force = self.config.force_reprobe if force is None else force
        scheduler = self._scheduler(force=force)
        report = RunReport(status=False)

        self._phase(report, "Phase 1: Reading endpoints.json...")
        catalog_result = await asyncio.to_thread(self.store.load_endpoints)
        endpoints = endpoints_from_catalog(catalog_result.data)
        self._phase(report, f"  Found {len(endpoints)} endpoints")
        if force:
            self._phase(report, "  Forced: every endpoint will be re-probed")

        self._phase(report, "Phase 2: Probing endpoints...")
        endpoints, report.probed_count = await scheduler.probe_all(endpoints)
        self._phase(report, f"  Probed: {report.probed_count} endpoints")

        self._phase(report, "Phase 3: Writing data...")
        catalog = build_catalog(endpoints)
        report.stats = catalog["stats"]
        await asyncio.to_thread(self.store.write_endpoints, catalog)
        await self._project(catalog)
        report.status = True
        self._phase(report, "Done.")
        return report

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _scheduler(self, force: bool = False) -> ProbeScheduler:
        return ProbeScheduler(
            self.verifiers,
            max_concurrency=self.config.probe_max_concurrency,
            timeout_ms=self.config.probe_timeout_ms,
            max_age_days=self.config.probe_max_age_days,
            force=force,
        )

    async def _collect(self, state: dict[str, Any], report: RunReport) -> list[Discovery]:
        cursors: dict[str, Any] = state.setdefault("cursors", {})
        results = await asyncio.gather(
            *(c.collect(dict(cursors.get(c.source_type) or {})) for c in self.collectors),
            return_exceptions=True,
        )

        discoveries: list[Discovery] = []
        for collector, result in zip(self.collectors, results):
            name = collector.source_type or collector.__class__.__name__
            if isinstance(result, BaseException):
                error = f"{result.__class__.__name__}: {result}"
            elif not isinstance(result, CollectResult):
                error = "collector returned no result"
            elif not result.status:
                error = result.error or "unknown error"
            else:
                discoveries.extend(result.discoveries)
                cursor = cursors.setdefault(collector.source_type, {})
                cursor.update(result.cursor_updates)
                cursor["lastFetchedAt"] = utc_now_iso()
                self._phase(
                    report,
                    f"  {name}: {len(result.discoveries)} endpoints from {result.total_fetched} records",
                )
                continue

            report.collector_errors[name] = error
            logger.error("collector %s failed: %s", name, error)
            report.log.append(f"  {name}: FAILED - {error}")
        return discoveries

    def _history_entry(self, catalog: dict[str, Any], report: RunReport) -> dict[str, Any]:
        stats = catalog["stats"]
        return {
            "date": catalog["updatedAt"][:10],
            "total": stats["total"],
            "reachable": stats["reachable"],
            "withX402": stats["withX402"],
            "bySource": dict(stats["bySource"]),
            "newEndpoints": report.new_endpoints,
            "probedThisRun": report.probed_count,
        }

    async def _project(self, catalog: dict[str, Any]) -> None:
        dashboard = build_dashboard_data(catalog)
        await asyncio.to_thread(write_dashboard_data, self.config.resolved_docs_dir, dashboard)

    @staticmethod
    def _phase(report: RunReport, line: str) -> None:
        logger.info(line.strip())
        report.log.append(line)
