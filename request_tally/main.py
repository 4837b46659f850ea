from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from request_tally.config import Settings, get_settings
from request_tally.observability.client import TallyClient
from request_tally.observability.middleware import TallyMiddleware


def create_app(settings: Settings | None = None, client: TallyClient | None = None) -> FastAPI:
    """Small demo API with every request reported to the collector."""

    settings = settings or get_settings()
    client = client or TallyClient.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await client.start()
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="Request Tally Demo", version="0.1.0", lifespan=lifespan)
    app.state.tally_client = client
    app.add_middleware(TallyMiddleware, client=client)

    @app.get("/route-one", response_class=PlainTextResponse)
    async def route_one() -> str:
        return "howdy from route one!"

    @app.get("/route-two", response_class=PlainTextResponse)
    async def route_two() -> str:
        return "howdy from route two!"

    @app.get("/route/{dynamic}", response_class=PlainTextResponse)
    async def route_dynamic(dynamic: str) -> str:
        return f"howdy from route {dynamic}!"

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
