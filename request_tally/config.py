from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from request_tally.models.schemas import RequestLoggingConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    client_id: str = Field(default="", alias="APITALLY_CLIENT_ID")
    environment: str = Field(default="dev", alias="APITALLY_ENVIRONMENT")
    hub_url: str = Field(default="https://hub.apitally.io", alias="APITALLY_HUB_URL")
    timeout_seconds: float = Field(default=10.0, alias="APITALLY_TIMEOUT_SECONDS")
    max_queue_size: int = Field(default=10_000, alias="APITALLY_MAX_QUEUE_SIZE")

    request_logging_enabled: bool = Field(default=False, alias="APITALLY_REQUEST_LOGGING_ENABLED")
    log_query_params: bool | None = Field(default=None, alias="APITALLY_LOG_QUERY_PARAMS")
    log_request_headers: bool | None = Field(default=None, alias="APITALLY_LOG_REQUEST_HEADERS")
    log_request_body: bool | None = Field(default=None, alias="APITALLY_LOG_REQUEST_BODY")
    log_response_headers: bool | None = Field(default=None, alias="APITALLY_LOG_RESPONSE_HEADERS")
    log_response_body: bool | None = Field(default=None, alias="APITALLY_LOG_RESPONSE_BODY")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    tally_log_level: str | None = Field(default=None, alias="APITALLY_LOG_LEVEL")

    @property
    def request_logging(self) -> RequestLoggingConfig:
        return RequestLoggingConfig(
            enabled=self.request_logging_enabled,
            log_query_params=self.log_query_params,
            log_request_headers=self.log_request_headers,
            log_request_body=self.log_request_body,
            log_response_headers=self.log_response_headers,
            log_response_body=self.log_response_body,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
