from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field


class RequestLoggingConfig(BaseModel):
    enabled: bool = False
    log_query_params: bool | None = None
    log_request_headers: bool | None = None
    log_request_body: bool | None = None
    log_response_headers: bool | None = None
    log_response_body: bool | None = None


class CapturedRequest(BaseModel):
    consumer: str | None = None
    method: str
    path: str
    status_code: int
    request_count: int = 1
    request_size_sum: int = 0
    response_size_sum: int = 0
    response_times: dict[str, int] = Field(default_factory=dict)
    request_sizes: dict[str, int] = Field(default_factory=dict)
    response_sizes: dict[str, int] = Field(default_factory=dict)


class RequestsBundleMessage(BaseModel):
    time_offset: int = 0
    instance_uuid: UUID
    message_uuid: UUID
    requests: list[CapturedRequest]
    # Placeholders the collector expects; nothing populates them yet.
    validation_errors: list[dict] = Field(default_factory=list)
    server_errors: list[dict] = Field(default_factory=list)
    consumers: list[str] = Field(default_factory=list)


class StartupMessage(BaseModel):
    instance_uuid: UUID
    message_uuid: UUID
    paths: list[dict] = Field(default_factory=list)
    versions: dict[str, str] = Field(default_factory=dict)
    client: str


class LoggedRequest(BaseModel):
    method: str
    path: str
    url: str
    headers: list[tuple[str, str]] | None = None
    size: int
    consumer: str | None = None
    body: str | None = None


class LoggedResponse(BaseModel):
    status_code: int
    response_time: float
    headers: list[tuple[str, str]] | None = None
    size: int
    body: str | None = None


class RequestLogItem(BaseModel):
    timestamp: float
    request: LoggedRequest
    response: LoggedResponse


class RequestLogMessage(BaseModel):
    instance_uuid: UUID
    message_uuid: UUID
    requests: list[RequestLogItem]
