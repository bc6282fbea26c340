"""
Shared fixtures: a controllable clock, a throwaway SQLite database, and a
stubbed provider token endpoint behind ``httpx.MockTransport``.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio

from config.settings import Settings
from connectors.broker import Broker, build_broker
from connectors.registry import ProviderRegistry
from database.session import create_engine_and_factory, init_models

TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
BASE_URL = "https://broker.test"
CALLBACK_URL = f"{BASE_URL}/api/connect/callback"


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ProviderStub:
    """
    Records outbound token requests and answers from a per-URL queue.

    Responses are ``(status, body, content_type)`` tuples; the last
    queued response for a URL is reused once the queue runs dry.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._responses: Dict[str, List[Tuple[int, str, str]]] = {}
        self._failing: Set[str] = set()

    def respond(self, url: str, status: int = 200, json_body=None, text: Optional[str] = None) -> None:
        if json_body is not None:
            body, ctype = json.dumps(json_body), "application/json"
        else:
            body, ctype = text or "", "application/x-www-form-urlencoded"
        self._responses.setdefault(url, []).append((status, body, ctype))

    def fail(self, url: str) -> None:
        """Make requests to *url* fail at the transport level."""
        self._failing.add(url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self._failing:
            raise httpx.ConnectError("connection refused", request=request)
        queue = self._responses.get(url)
        if not queue:
            return httpx.Response(404, text=f"no stub for {url}")
        status, body, ctype = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, text=body, headers={"Content-Type": ctype})

    def form(self, index: int = -1) -> Dict[str, str]:
        return dict(parse_qsl(self.requests[index].content.decode()))


def make_settings(**overrides) -> Settings:
    values = dict(
        encryption_key=TEST_ENCRYPTION_KEY,
        public_base_url=BASE_URL,
        api_key="",
        database_url="sqlite+aiosqlite://",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = create_engine_and_factory(f"sqlite+aiosqlite:///{tmp_path / 'broker.db'}")
    await init_models(engine)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def http_client(provider_stub):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider_stub.handler)) as client:
        yield client


@pytest.fixture
def broker_factory(session_factory, http_client, clock) -> Callable[..., Broker]:
    """Build a broker over the test database, stubbed HTTP and fake clock."""

    def _build(registry: Optional[ProviderRegistry] = None, **settings_overrides) -> Broker:
        return build_broker(
            make_settings(**settings_overrides),
            session_factory,
            http_client=http_client,
            registry=registry,
            clock=clock,
        )

    return _build


@pytest.fixture
def broker(broker_factory) -> Broker:
    return broker_factory()
