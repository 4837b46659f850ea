from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from request_tally.config import get_settings
from request_tally.main import create_app
from request_tally.observability.client import TallyClient


class FakeCollector:
    """Stands in for the remote hub; records every POST it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 202
        self.fail_with: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return httpx.Response(self.status_code, json={})

    def posted(self, suffix: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith(f"/{suffix}")]

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{suffix}")]


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "APITALLY_CLIENT_ID",
        "APITALLY_ENVIRONMENT",
        "APITALLY_HUB_URL",
        "APITALLY_LOG_LEVEL",
        "LOG_LEVEL",
        "APITALLY_REQUEST_LOGGING_ENABLED",
        "APITALLY_LOG_QUERY_PARAMS",
        "APITALLY_LOG_REQUEST_HEADERS",
        "APITALLY_LOG_REQUEST_BODY",
        "APITALLY_LOG_RESPONSE_HEADERS",
        "APITALLY_LOG_RESPONSE_BODY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APITALLY_CLIENT_ID", "abc")
    monkeypatch.setenv("APITALLY_ENVIRONMENT", "prod")
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
async def make_client(collector: FakeCollector) -> AsyncIterator[Callable[..., TallyClient]]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(collector.handler))
    created: list[TallyClient] = []

    def _make(client_id: str = "abc", environment: str = "prod", **kwargs: Any) -> TallyClient:
        client = TallyClient(client_id, environment, http_client=http_client, **kwargs)
        created.append(client)
        return client

    yield _make

    for client in created:
        await client.aclose()
    await http_client.aclose()


@pytest.fixture
async def tally_client(make_client: Callable[..., TallyClient]) -> TallyClient:
    return make_client()


@pytest.fixture
async def api_client(tally_client: TallyClient) -> AsyncIterator[AsyncClient]:
    app = create_app(client=tally_client)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
