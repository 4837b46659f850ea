from __future__ import annotations

import asyncio
import base64
import time
import uuid
from dataclasses import replace
from typing import Any
from urllib.parse import urlsplit, urlunsplit
from uuid import UUID

import httpx
import structlog

from request_tally.config import Settings
from request_tally.models.schemas import (
    CapturedRequest,
    LoggedRequest,
    LoggedResponse,
    RequestLogItem,
    RequestLoggingConfig,
    RequestLogMessage,
    RequestsBundleMessage,
    StartupMessage,
)
from request_tally.observability.stash import LookupMiss, RequestRecord, RequestStash, ResponseRecord


logger = structlog.get_logger("request_tally.client")

DEFAULT_HUB_URL = "https://hub.apitally.io"
CLIENT_NAME = "python:starlette"
MAX_BODY_SIZE = 50_000
MASKED = "******"

_SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key"})
_SENSITIVE_FRAGMENTS = ("token", "secret", "password")

# (url suffix, json payload, query params)
_Emission = tuple[str, dict[str, Any], dict[str, str] | None]


def _time_bucket(seconds: float) -> str:
    ms = max(seconds, 0.0) * 1000.0
    return str(int(ms // 10) * 10)


def _size_bucket(size: int) -> str:
    return str(max(size, 0) // 1000)


def _strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _mask_headers(headers: list[tuple[str, str]] | None) -> list[tuple[str, str]] | None:
    if headers is None:
        return None
    masked = []
    for name, value in headers:
        lowered = name.lower()
        if lowered in _SENSITIVE_HEADERS or any(fragment in lowered for fragment in _SENSITIVE_FRAGMENTS):
            value = MASKED
        masked.append((name, value))
    return masked


def _encode_body(body: bytes | None) -> str | None:
    if body is None or len(body) > MAX_BODY_SIZE:
        return None
    return base64.b64encode(body).decode("ascii")


class TallyClient:
    """Ships startup, usage and request-log messages to the collector.

    Every emit method returns immediately. Messages go onto a bounded queue that a
    single dispatcher task drains; delivery outcomes are discarded so the
    instrumented service never sees a collector failure.
    """

    def __init__(
        self,
        client_id: str,
        environment: str,
        *,
        request_logging: RequestLoggingConfig | None = None,
        hub_url: str = DEFAULT_HUB_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_queue_size: int = 10_000,
    ) -> None:
        if not client_id:
            raise ValueError("client_id must not be empty")
        if not environment:
            raise ValueError("environment must not be empty")

        self.base_url = f"{hub_url.rstrip('/')}/v2/{client_id}/{environment}"
        self.instance_uuid = uuid.uuid4()
        self.request_logging = request_logging or RequestLoggingConfig()
        self.request_stash = RequestStash()

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._queue: asyncio.Queue[_Emission] = asyncio.Queue(maxsize=max_queue_size)
        self._dispatcher: asyncio.Task[None] | None = None

        self.send_startup_data()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> TallyClient:
        return cls(
            settings.client_id,
            settings.environment,
            request_logging=settings.request_logging,
            hub_url=settings.hub_url,
            timeout=settings.timeout_seconds,
            max_queue_size=settings.max_queue_size,
            **kwargs,
        )

    async def start(self) -> None:
        """Start the dispatcher now instead of on the first emission."""
        self._ensure_dispatcher()

    async def flush(self) -> None:
        """Wait until everything queued so far has been sent (or failed)."""
        self._ensure_dispatcher()
        await self._queue.join()

    async def aclose(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.info("tally.dropped_on_shutdown", count=dropped)

        if self._owns_http_client:
            await self._http.aclose()

    def stash(self, key: UUID, record: RequestRecord) -> None:
        self.request_stash.put(key, record)

    def send_startup_data(self) -> None:
        message = StartupMessage(
            instance_uuid=self.instance_uuid,
            message_uuid=uuid.uuid4(),
            client=CLIENT_NAME,
        )
        self._enqueue("startup", message.model_dump(mode="json"))
        logger.debug("tally.startup_queued", instance_uuid=str(self.instance_uuid))

    def emit_usage(self, key: UUID, response: ResponseRecord, request_body: bytes | None = None) -> None:
        try:
            request = self.request_stash.take(key)
        except LookupMiss:
            logger.warning("tally.stash_miss", request_key=str(key))
            return
        if request_body is not None:
            # The body is only read while the app runs, after the record was stashed.
            request = replace(request, body=request_body)

        captured = CapturedRequest(
            method=request.method,
            path=request.matched_path,
            status_code=response.status_code,
            request_size_sum=request.content_length,
            response_size_sum=response.size,
            response_times={_time_bucket(response.response_time): 1},
            request_sizes={_size_bucket(request.content_length): 1},
            response_sizes={_size_bucket(response.size): 1},
        )
        message = RequestsBundleMessage(
            instance_uuid=self.instance_uuid,
            message_uuid=key,
            requests=[captured],
        )
        self._enqueue("sync", message.model_dump(mode="json"))

        if self.request_logging.enabled:
            self.emit_log(request, response)

    def emit_log(self, request: RequestRecord, response: ResponseRecord) -> None:
        config = self.request_logging
        log_uuid = uuid.uuid4()

        item = RequestLogItem(
            timestamp=request.timestamp or time.time(),
            request=LoggedRequest(
                method=request.method,
                path=request.matched_path,
                url=request.url if config.log_query_params else _strip_query(request.url),
                headers=_mask_headers(request.headers) if config.log_request_headers else None,
                size=request.content_length,
                body=_encode_body(request.body) if config.log_request_body else None,
            ),
            response=LoggedResponse(
                status_code=response.status_code,
                response_time=response.response_time,
                headers=_mask_headers(response.headers) if config.log_response_headers else None,
                size=response.size,
                body=_encode_body(response.body) if config.log_response_body else None,
            ),
        )
        message = RequestLogMessage(instance_uuid=self.instance_uuid, message_uuid=log_uuid, requests=[item])
        self._enqueue("log", message.model_dump(mode="json"), params={"uuid": str(log_uuid)})

    def _enqueue(self, suffix: str, payload: dict[str, Any], params: dict[str, str] | None = None) -> None:
        try:
            self._queue.put_nowait((suffix, payload, params))
        except asyncio.QueueFull:
            logger.warning("tally.queue_full", suffix=suffix, max_size=self._queue.maxsize)
            return
        self._ensure_dispatcher()

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is not None and not self._dispatcher.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Not inside an event loop yet; the queue is drained once one starts us.
            return
        self._dispatcher = loop.create_task(self._dispatch(), name="tally-dispatcher")

    async def _dispatch(self) -> None:
        while True:
            suffix, payload, params = await self._queue.get()
            try:
                await self._send(suffix, payload, params)
            finally:
                self._queue.task_done()

    async def _send(self, suffix: str, payload: dict[str, Any], params: dict[str, str] | None) -> None:
        url = f"{self.base_url}/{suffix}"
        try:
            response = await self._http.post(url, json=payload, params=params)
        except Exception:
            logger.debug("tally.send_failed", url=url, exc_info=True)
            return
        if response.is_error:
            logger.debug("tally.send_rejected", url=url, status_code=response.status_code)
