"""Shared fixtures for console-ext tests."""

import json
import threading
from collections.abc import Callable, Iterator

import httpx
import pytest

from console_ext.config import Config
from console_ext.relay import NotificationRelay


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSink:
    """Console-like sink that remembers every write."""

    def __init__(self) -> None:
        self.lines: list[tuple[str, tuple]] = []

    def info(self, *args):
        self.lines.append(("info", args))

    def warning(self, *args):
        self.lines.append(("warning", args))

    def error(self, *args):
        self.lines.append(("error", args))

    def messages(self, level: str) -> list[str]:
        return [" ".join(str(a) for a in args) for lvl, args in self.lines if lvl == level]


class RecordingTransport:
    """httpx mock transport that records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})

    def bodies(self, host: str | None = None) -> list[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if host is None or r.url.host == host
        ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_relay(
    clock: FakeClock, transport: RecordingTransport
) -> Iterator[Callable[..., NotificationRelay]]:
    """Factory for relays wired to the fake clock and mock transport."""
    relays: list[NotificationRelay] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response] | None = None, **options):
        client = httpx.Client(transport=httpx.MockTransport(handler or transport))
        relay = NotificationRelay(Config(**options), client=client, clock=clock)
        relays.append(relay)
        return relay

    yield factory

    for relay in relays:
        relay.close()
        relay.client.close()
