"""Shared fixtures for ghpulse tests.

HTTP is faked with :class:`httpx.MockTransport`; no test touches the network.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from ghpulse.engines.github.client import GitHubDataClient
from ghpulse.engines.github.request_engine import EngineConfig, RequestEngine
from ghpulse.engines.github.token import static_token

API_URL = "https://api.test"
GRAPHQL_URL = "https://api.test/graphql"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


class FakeClock:
    """Epoch clock that only moves when the patched ``asyncio.sleep`` is awaited."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float, *args: Any, **kwargs: Any) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(clock: FakeClock):
    """Factory for engines wired to a MockTransport handler."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        token: str | None = "test-token",
        **config: Any,
    ) -> RequestEngine:
        cfg = EngineConfig(api_url=API_URL, graphql_url=GRAPHQL_URL, **config)
        return RequestEngine(
            static_token(token),
            cfg,
            transport=httpx.MockTransport(handler),
            clock=clock,
        )

    return _make


@pytest.fixture
def make_client(make_engine):
    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any):
        per_page = kwargs.pop("per_page", 100)
        cache = kwargs.pop("cache", None)
        return GitHubDataClient(make_engine(handler, **kwargs), cache, per_page=per_page)

    return _make
