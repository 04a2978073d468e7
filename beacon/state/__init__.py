"""beacon.state — atomic JSON persistence for the catalog, cursors and history."""

from __future__ import annotations

from beacon.state.store import (
    Defaulted,
    Loaded,
    LoadResult,
    StateStore,
    default_catalog,
    default_state,
    write_json_atomic,
)

__all__ = [
    "StateStore",
    "Loaded",
    "Defaulted",
    "LoadResult",
    "default_state",
    "default_catalog",
    "write_json_atomic",
]
