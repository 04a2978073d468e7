"""Verifier interface shared by the protocol probes."""

from __future__ import annotations

import abc
import json
from typing import Any

import httpx

from beacon.models import ProbeResult


class Verifier(abc.ABC):
    """Checks one endpoint for liveness and protocol feature support.

    Implementations enforce their own timeout and should return a failed
    :class:`ProbeResult` rather than raise; the scheduler still converts any
    exception that escapes into a failed result.
    """

    protocol: str = ""

    #: Category keys reported by this verifier, all ``False`` on failure.
    CATEGORY_KEYS: tuple[str, ...] = ("isReachable",)

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    @abc.abstractmethod
    async def verify(self, url: str, timeout_ms: int) -> ProbeResult:
        raise NotImplementedError

    def _client(self, timeout_ms: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            transport=self._transport,
        )

    def _failure(self, message: str, summary: dict[str, Any] | None = None) -> ProbeResult:
        result = ProbeResult.failed(message, {key: False for key in self.CATEGORY_KEYS})
        if summary:
            result.summary = dict(summary)
        return result


def elapsed_ms(start: float, end: float) -> int:
    return int((end - start) * 1000)


def decode_body(resp: httpx.Response) -> Any:
    """Decode a JSON or single-event SSE response body.

    Raises:
        ValueError: the body holds no JSON payload.
    """
    content_type = resp.headers.get("content-type", "")
    if "text/event-stream" in content_type:
        for line in resp.text.splitlines():
            if line.startswith("data:"):
                return json.loads(line[len("data:"):].strip())
        raise ValueError("event stream carried no data")
    return resp.json()
