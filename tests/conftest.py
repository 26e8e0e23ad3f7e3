"""Shared fixtures for guarded_http tests."""

from __future__ import annotations

from datetime import timedelta

import pytest

from guarded_http.services.client import HttpClient, HttpClientConfig
from guarded_http.services.connectivity import ManualConnectivity
from guarded_http.transport.mock import MockTransport


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connectivity() -> ManualConnectivity:
    return ManualConnectivity(online=True)


@pytest.fixture
def make_client(connectivity):
    """Factory building a client around a MockTransport handler."""

    def _make(handler=None, clock=None, **config) -> tuple[HttpClient, MockTransport]:
        config.setdefault("retries", 0)
        config.setdefault("retry_base_delay", 0.001)
        config.setdefault("circuit_breaker_cooldown", timedelta(seconds=60))
        transport = MockTransport(handler)
        kwargs = {"transport": transport, "connectivity": connectivity}
        if clock is not None:
            kwargs["clock"] = clock
        client = HttpClient(HttpClientConfig(**config), **kwargs)
        return client, transport

    return _make
