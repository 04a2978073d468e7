"""Collector interface, one implementation per source type."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any

import httpx

from beacon.models import Discovery


@dataclass
class CollectResult:
    """Outcome of one collection pass.

    ``cursor_updates`` is merged into the source's cursor only when
    ``status`` is ``True``.
    """

    status: bool
    discoveries: list[Discovery] = field(default_factory=list)
    cursor_updates: dict[str, Any] = field(default_factory=dict)
    total_fetched: int = 0
    error: str | None = None


class Collector(abc.ABC):
    """Pulls endpoint discoveries from a single registry.

    Subclasses report network and API failures through a ``status=False``
    :class:`CollectResult`; the monitor also isolates anything they raise.
    """

    source_type: str = ""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30.0) -> None:
        self._transport = transport
        self._timeout = timeout

    @abc.abstractmethod
    async def collect(self, cursor: dict[str, Any]) -> CollectResult:
        raise NotImplementedError

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
