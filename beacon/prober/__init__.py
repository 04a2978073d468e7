"""beacon.prober — endpoint verification.

Exports:
    ProbeScheduler     — bounded-concurrency, staleness-aware runner
    probe_all          — one-shot wrapper around ProbeScheduler
    needs_probe        — staleness selection rule
    Verifier           — verifier base class
    McpVerifier        — MCP handshake probe
    A2aVerifier        — A2A agent-card probe
    default_verifiers  — protocol → verifier map used by the monitor
"""

from __future__ import annotations

from beacon.prober.a2a import A2aVerifier
from beacon.prober.base import Verifier
from beacon.prober.mcp import McpVerifier
from beacon.prober.scheduler import ProbeScheduler, default_verifiers, needs_probe, probe_all

__all__ = [
    "ProbeScheduler",
    "probe_all",
    "needs_probe",
    "Verifier",
    "McpVerifier",
    "A2aVerifier",
    "default_verifiers",
]
