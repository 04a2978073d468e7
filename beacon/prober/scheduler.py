"""Staleness-aware probe scheduler with bounded concurrency.

Selects endpoints whose probe is missing or older than the staleness window
and verifies them with at most ``max_concurrency`` verifications in flight.
The bound is an :class:`asyncio.Semaphore`, whose waiters are woken one at a
time in FIFO order.  Every task settles on its own: a verifier exception is
turned into a failed :class:`ProbeResult` on that endpoint and never reaches
its siblings or the caller.

One scheduler is built per run; it holds no module-level state.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping

from beacon.models import Endpoint, ProbeResult, parse_timestamp
from beacon.prober.a2a import A2aVerifier
from beacon.prober.base import Verifier
from beacon.prober.mcp import McpVerifier
from beacon.validation import Checks

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_MAX_AGE_DAYS = 7
FALLBACK_PROTOCOL = "mcp"


def needs_probe(endpoint: Endpoint, now: datetime, max_age: timedelta) -> bool:
    """``True`` when *endpoint* was never probed or its probe is at least *max_age* old.

    The probe's status plays no part; a probe whose timestamp cannot be
    parsed is treated as stale.
    """
    probe = endpoint.probe
    if probe is None:
        return True
    try:
        probed_at = parse_timestamp(probe.timestamp)
    except (TypeError, ValueError):
        return True
    return now - probed_at >= max_age


class ProbeScheduler:
    """Runs verifications for stale endpoints under a concurrency ceiling.

    Args:
        verifiers:        Protocol name → :class:`Verifier`.  Endpoints with an
                          unknown protocol use the ``mcp`` verifier.
        max_concurrency:  Maximum verifications in flight at once.
        timeout_ms:       Per-verification timeout handed to the verifier.
        max_age_days:     Staleness window in days.
        force:            Re-probe every endpoint regardless of age.

    Raises:
        ValidationError: any numeric parameter is not positive.
    """

    def __init__(
        self,
        verifiers: Mapping[str, Verifier],
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        force: bool = False,
    ) -> None:
        checks = Checks()
        checks.require(verifiers is not None and len(verifiers) > 0, "verifiers: Must not be empty")
        checks.positive_number("maxConcurrency", max_concurrency, integer=True)
        checks.positive_number("timeout", timeout_ms)
        checks.positive_number("maxAgeDays", max_age_days)
        checks.raise_if_any()

        self.verifiers = dict(verifiers)
        self.max_concurrency = max_concurrency
        self.timeout_ms = timeout_ms
        self.max_age = timedelta(days=max_age_days)
        self.force = force

    def select(self, endpoints: list[Endpoint], now: datetime | None = None) -> list[Endpoint]:
        """Return the endpoints due for verification, in catalog order."""
        if self.force:
            return list(endpoints)
        now = now or datetime.now(tz=timezone.utc)
        return [ep for ep in endpoints if needs_probe(ep, now, self.max_age)]

    async def probe_all(self, endpoints: list[Endpoint]) -> tuple[list[Endpoint], int]:
        """Verify every due endpoint and write the result onto it.

        Returns:
            ``(endpoints, probed_count)``: the same list, mutated in place,
            and the number of verification attempts made (failures included).
        """
        checks = Checks()
        checks.is_list("endpoints", endpoints)
        checks.raise_if_any()

        selected = self.select(endpoints)
        if not selected:
            logger.info("probe phase: nothing due (%d endpoint(s) fresh)", len(endpoints))
            return endpoints, 0

        semaphore = asyncio.Semaphore(self.max_concurrency)
        attempts = 0

        async def _probe_one(endpoint: Endpoint) -> None:
            nonlocal attempts
            async with semaphore:
                attempts += 1
                endpoint.probe = await self._verify(endpoint)

        logger.info(
            "probe phase: %d of %d endpoint(s) due, concurrency=%d",
            len(selected),
            len(endpoints),
            self.max_concurrency,
        )
        results = await asyncio.gather(
            *(_probe_one(ep) for ep in selected),
            return_exceptions=True,
        )
        for endpoint, outcome in zip(selected, results):
            if isinstance(outcome, BaseException):
                logger.error("probe task for %s ended abnormally: %r", endpoint.url, outcome)
                endpoint.probe = ProbeResult.failed(f"Probe task ended abnormally: {outcome!r}")
        return endpoints, attempts

    async def _verify(self, endpoint: Endpoint) -> ProbeResult:
        verifier = self.verifiers.get(endpoint.protocol) or self.verifiers.get(FALLBACK_PROTOCOL)
        if verifier is None:
            return ProbeResult.failed(f"No verifier for protocol {endpoint.protocol!r}")
        try:
            result = await verifier.verify(endpoint.url, self.timeout_ms)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("probe of %s raised %s: %s", endpoint.url, exc.__class__.__name__, exc)
            return ProbeResult.failed(f"Probe failed unexpectedly: {exc}")
        if not isinstance(result, ProbeResult):
            return ProbeResult.failed("Probe returned no result")
        return result


async def probe_all(
    endpoints: list[Endpoint],
    verifiers: Mapping[str, Verifier],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_age_days: float = DEFAULT_MAX_AGE_DAYS,
) -> tuple[list[Endpoint], int]:
    """Build a one-shot :class:`ProbeScheduler` and run it over *endpoints*."""
    scheduler = ProbeScheduler(
        verifiers,
        max_concurrency=max_concurrency,
        timeout_ms=timeout_ms,
        max_age_days=max_age_days,
    )
    return await scheduler.probe_all(endpoints)


def default_verifiers() -> dict[str, Verifier]:
    return {"mcp": McpVerifier(), "a2a": A2aVerifier()}
