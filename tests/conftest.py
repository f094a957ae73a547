# tests/conftest.py
"""Shared fakes: aiohttp session, clocks, recording sink, canned fetch client.

No test touches the network; the FetchClient gets a FakeSession and the
metric catalog gets a CannedClient.
"""

from __future__ import annotations

import asyncio
from typing import Any

import orjson
import pytest

from fiscal_clock.errors import NetworkError
from fiscal_clock.types import MetricDefinition, MetricKind, MetricSnapshot, SystemStatus


class FakeResponse:
    def __init__(self, status: int = 200, body: bytes = b"{}", delay: float = 0.0) -> None:
        self.status = status
        self.reason = "OK" if status < 400 else "Error"
        self._body = body
        self._delay = delay

    async def __aenter__(self) -> FakeResponse:
        if self._delay:
            await asyncio.sleep(self._delay)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays queued responses in order.

    A queued exception is raised from get() instead of returning a response.
    When the queue runs dry the last item is repeated.
    """

    def __init__(self, *responses: FakeResponse | BaseException) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.closed = False

    def get(self, url: str, params: dict[str, str] | None = None) -> FakeResponse:
        self.calls.append((url, dict(params or {})))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


def json_response(payload: Any, status: int = 200) -> FakeResponse:
    return FakeResponse(status=status, body=orjson.dumps(payload))


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Injected sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def set_loading(self, name: str) -> None:
        self.events.append(("loading", name))

    def set_error(self, name: str, message: str) -> None:
        self.events.append(("error", name, message))

    def set_value(self, name: str, text: str, label: str) -> None:
        self.events.append(("value", name, text, label))

    def set_status(self, status: SystemStatus, message: str) -> None:
        self.events.append(("status", status, message))

    def of_kind(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


class CannedClient:
    """Fetch client replacement returning canned bodies per endpoint key.

    A callable body is called with the request params.
    """

    def __init__(self, bodies: dict[str, Any]) -> None:
        self.bodies = bodies
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def fetch(self, endpoint_key: str, params: dict[str, Any] | None = None) -> Any:
        self.calls.append((endpoint_key, dict(params or {})))
        body = self.bodies.get(endpoint_key)
        if body is None:
            raise NetworkError(f"no canned body for {endpoint_key}")
        if callable(body):
            return body(params or {})
        return body


class Switch:
    """Leaf resolver that succeeds or fails on demand."""

    def __init__(self, snapshot: MetricSnapshot | None = None, error: Exception | None = None) -> None:
        self.snapshot = snapshot
        self.error = error
        self.calls = 0

    async def __call__(self, _deps: Any) -> MetricSnapshot:
        self.calls += 1
        if self.error is not None:
            raise self.error
        assert self.snapshot is not None
        return self.snapshot


def leaf(name: str, resolve: Any, render: Any = str) -> MetricDefinition:
    return MetricDefinition(name, MetricKind.LEAF, (), resolve, render, name.title())


def derived(name: str, deps: tuple[str, ...], resolve: Any, render: Any = str) -> MetricDefinition:
    return MetricDefinition(name, MetricKind.DERIVED, deps, resolve, render, name.title())


def snap(value: float, ts: float = 0.0, rate: float = 0.0, label: str = "") -> MetricSnapshot:
    return MetricSnapshot(value, ts, rate, label)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
