"""beacon.registry — endpoint identity and catalog merge.

Exports:
    normalize_url   — canonical URL form
    endpoint_id     — content-addressed endpoint id
    merge           — fold discoveries into a catalog
    compute_stats   — aggregate catalog counters
"""

from __future__ import annotations

from beacon.registry.merge import compute_stats, empty_stats, merge
from beacon.registry.normalizer import endpoint_id, normalize_url

__all__ = [
    "normalize_url",
    "endpoint_id",
    "merge",
    "compute_stats",
    "empty_stats",
]
