"""Durable JSON state: catalog, collector cursors and daily history.

Every write goes to a temporary file in the target's directory and is then
moved over the target with :func:`os.replace`, so readers see either the old
file or the new one in full.  Loads never fail: a missing or corrupt file
yields a :class:`Defaulted` result carrying a fresh default document.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from beacon.config import HISTORY_RETENTION_DAYS
from beacon.models import utc_now_iso
from beacon.registry.merge import empty_stats
from beacon.validation import Checks

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
ENDPOINTS_FILE = "endpoints.json"
HISTORY_DIR = "history"

DEFAULT_STATE: dict[str, Any] = {
    "version": 1,
    "updatedAt": None,
    "cursors": {
        "mcp-registry": {
            "lastCursor": None,
            "lastFetchedAt": None,
            "totalFetched": 0,
        },
        "erc8004": {
            "lastProcessedBlock": 24339925,
            "lastFetchedAt": None,
            "genesisBlock": 24339925,
            "contract": "0x8004A169FB4a3325136EB29fA0ceB6D2e539a432",
        },
        "bazaar": {
            "lastOffset": 0,
            "lastFetchedAt": None,
            "totalFetched": 0,
        },
        "manual": {
            "lastFetchedAt": None,
            "totalFetched": 0,
        },
    },
    "probeMaxAgeDays": 7,
}


def default_state() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_STATE)


def default_catalog() -> dict[str, Any]:
    return {"version": 1, "updatedAt": None, "stats": empty_stats(), "endpoints": []}


@dataclass
class Loaded:
    """The file existed and parsed."""

    data: dict[str, Any]


@dataclass
class Defaulted:
    """The file was missing or unusable; ``data`` holds the defaults."""

    reason: str
    data: dict[str, Any]


LoadResult = Union[Loaded, Defaulted]


def write_json_atomic(path: Path, data: Any) -> None:
    """Write *data* as JSON to *path* via a same-directory temp file and rename.

    Raises:
        OSError: the directory or file could not be written.  The temp file
            is removed and *path* is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=4, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _read_json(path: Path, expect_key: str) -> tuple[dict[str, Any] | None, str]:
    if not path.exists():
        return None, f"{path.name} not found"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return None, f"{path.name} unreadable: {exc}"
    if not isinstance(data, dict) or not isinstance(data.get(expect_key), (dict, list)):
        return None, f"{path.name} has no {expect_key!r} section"
    return data, ""


class StateStore:
    """File-backed store rooted at *data_dir*.

    Single-writer: one pipeline run owns the directory at a time.
    """

    def __init__(self, data_dir: Path | str, retention: int = HISTORY_RETENTION_DAYS) -> None:
        checks = Checks()
        checks.non_empty_str("dataPath", str(data_dir) if data_dir is not None else None)
        checks.positive_number("retention", retention, integer=True)
        checks.raise_if_any()
        self.data_dir = Path(data_dir)
        self.retention = retention

    @property
    def state_path(self) -> Path:
        return self.data_dir / STATE_FILE

    @property
    def endpoints_path(self) -> Path:
        return self.data_dir / ENDPOINTS_FILE

    @property
    def history_dir(self) -> Path:
        return self.data_dir / HISTORY_DIR

    # ------------------------------------------------------------------ #
    # Cursors                                                              #
    # ------------------------------------------------------------------ #

    def load_state(self) -> LoadResult:
        """Load ``state.json``; cursors absent from the file are filled from defaults."""
        data, reason = _read_json(self.state_path, "cursors")
        if data is None:
            self._log_default(reason)
            return Defaulted(reason=reason, data=default_state())

        cursors = data["cursors"]
        if not isinstance(cursors, dict):
            reason = f"{STATE_FILE} cursors is not an object"
            self._log_default(reason)
            return Defaulted(reason=reason, data=default_state())
        for source_type, cursor in DEFAULT_STATE["cursors"].items():
            if not isinstance(cursors.get(source_type), dict):
                cursors[source_type] = copy.deepcopy(cursor)
        data.setdefault("version", 1)
        data.setdefault("probeMaxAgeDays", DEFAULT_STATE["probeMaxAgeDays"])
        return Loaded(data=data)

    def save_state(self, state: dict[str, Any]) -> dict[str, Any]:
        """Stamp ``updatedAt`` and write *state*; returns the written document."""
        checks = Checks()
        checks.is_mapping("state", state)
        checks.raise_if_any()
        updated = {**state, "updatedAt": utc_now_iso()}
        write_json_atomic(self.state_path, updated)
        return updated

    # ------------------------------------------------------------------ #
    # Catalog                                                              #
    # ------------------------------------------------------------------ #

    def load_endpoints(self) -> LoadResult:
        data, reason = _read_json(self.endpoints_path, "endpoints")
        if data is None:
            self._log_default(reason)
            return Defaulted(reason=reason, data=default_catalog())
        if not isinstance(data["endpoints"], list):
            reason = f"{ENDPOINTS_FILE} endpoints is not a list"
            self._log_default(reason)
            return Defaulted(reason=reason, data=default_catalog())
        return Loaded(data=data)

    def write_endpoints(self, catalog: dict[str, Any]) -> None:
        checks = Checks()
        checks.is_mapping("endpointsData", catalog)
        if isinstance(catalog, dict):
            checks.is_list("endpointsData.endpoints", catalog.get("endpoints"))
        checks.raise_if_any()
        write_json_atomic(self.endpoints_path, catalog)

    # ------------------------------------------------------------------ #
    # History                                                              #
    # ------------------------------------------------------------------ #

    def write_history(self, entry: dict[str, Any]) -> Path:
        """Write ``history/<date>.json`` then prune beyond the retention count.

        Pruning is best-effort; its failures are logged and never raised.
        """
        checks = Checks()
        checks.is_mapping("historyEntry", entry)
        if isinstance(entry, dict):
            checks.non_empty_str("historyEntry.date", entry.get("date"))
        checks.raise_if_any()

        path = self.history_dir / f"{entry['date']}.json"
        write_json_atomic(path, entry)
        self._prune_history()
        return path

    def load_history(self) -> list[dict[str, Any]]:
        """Return readable history entries, oldest first."""
        if not self.history_dir.is_dir():
            return []
        entries: list[dict[str, Any]] = []
        for path in sorted(self.history_dir.glob("*.json")):
            try:
                entries.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                logger.warning("skipping unreadable history file %s: %s", path.name, exc)
        return entries

    def _prune_history(self) -> None:
        try:
            files = sorted(p for p in self.history_dir.iterdir() if p.suffix == ".json")
        except OSError as exc:
            logger.warning("history pruning skipped: %s", exc)
            return
        excess = len(files) - self.retention
        for path in files[: max(excess, 0)]:
            try:
                path.unlink()
                logger.debug("pruned history file %s", path.name)
            except OSError as exc:
                logger.warning("could not prune history file %s: %s", path.name, exc)

    @staticmethod
    def _log_default(reason: str) -> None:
        if "not found" in reason:
            logger.info("using defaults: %s", reason)
        else:
            logger.warning("using defaults: %s", reason)
