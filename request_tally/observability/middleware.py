from __future__ import annotations

import time
import uuid
from time import perf_counter
from typing import Any, Callable
from uuid import UUID

import structlog
from starlette.datastructures import URL, Headers
from starlette.routing import Match

from request_tally.observability.client import MAX_BODY_SIZE, TallyClient
from request_tally.observability.stash import RequestRecord, ResponseRecord


logger = structlog.get_logger("request_tally.middleware")


def parse_content_length(value: str | None) -> int:
    """Header value as a byte count; anything missing or malformed counts as 0."""

    if value is None:
        return 0
    value = value.strip()
    # int() would also take "1_000", "+5" and non-ASCII digits.
    if not (value.isascii() and value.isdigit()):
        return 0
    return int(value)


def matched_route_path(scope: dict[str, Any]) -> str:
    """Path template of the route that will serve this request, else the raw path."""

    raw_path = scope.get("path", "")
    app = scope.get("app")
    for route in getattr(app, "routes", None) or []:
        match, _ = route.matches(scope)
        if match == Match.FULL:
            return getattr(route, "path", raw_path)
    return raw_path


class TallyMiddleware:
    """Records every HTTP request/response pair and hands it to a TallyClient.

    The response is forwarded untouched and errors from the wrapped app propagate
    as-is; problems inside the instrumentation itself are only logged.
    """

    def __init__(self, app: Callable[..., Any], client: TallyClient) -> None:
        self.app = app
        self.client = client

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        key = uuid.uuid4()
        config = self.client.request_logging
        capture_request_body = config.enabled and bool(config.log_request_body)
        capture_response_body = config.enabled and bool(config.log_response_body)
        log_response_headers = config.enabled and bool(config.log_response_headers)

        self._stash_request(key, scope)

        start = perf_counter()
        status_code: int | None = None
        response_size = 0
        response_headers: list[tuple[str, str]] | None = None
        request_body = bytearray()
        response_body = bytearray()

        async def receive_wrapper() -> dict[str, Any]:
            message = await receive()
            if message.get("type") == "http.request" and len(request_body) <= MAX_BODY_SIZE:
                request_body.extend(message.get("body", b""))
            return message

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code, response_size, response_headers

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                headers = Headers(raw=message.get("headers", []))
                response_size = parse_content_length(headers.get("content-length"))
                if log_response_headers:
                    response_headers = headers.items()
            elif (
                capture_response_body
                and message.get("type") == "http.response.body"
                and len(response_body) <= MAX_BODY_SIZE
            ):
                response_body.extend(message.get("body", b""))

            await send(message)

        try:
            await self.app(scope, receive_wrapper if capture_request_body else receive, send_wrapper)
        except BaseException:
            self.client.request_stash.discard(key)
            raise

        if status_code is None:
            # The app returned without ever starting a response.
            self.client.request_stash.discard(key)
            return

        response = ResponseRecord(
            size=response_size,
            status_code=status_code,
            response_time=perf_counter() - start,
            headers=response_headers,
            body=bytes(response_body) if capture_response_body else None,
        )
        try:
            self.client.emit_usage(
                key,
                response,
                request_body=bytes(request_body) if capture_request_body else None,
            )
        except Exception:
            logger.exception("tally.instrumentation_failed", stage="emit", request_key=str(key))

    def _stash_request(self, key: UUID, scope: dict[str, Any]) -> None:
        config = self.client.request_logging
        try:
            headers = Headers(scope=scope)
            record = RequestRecord(
                content_length=parse_content_length(headers.get("content-length")),
                matched_path=matched_route_path(scope),
                method=scope.get("method", "GET"),
                url=str(URL(scope=scope)),
                timestamp=time.time(),
                headers=headers.items() if config.enabled and config.log_request_headers else None,
            )
            self.client.stash(key, record)
        except Exception:
            logger.exception("tally.instrumentation_failed", stage="stash", request_key=str(key))
