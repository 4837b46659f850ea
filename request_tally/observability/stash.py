from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from uuid import UUID


@dataclass(frozen=True)
class RequestRecord:
    content_length: int
    matched_path: str
    method: str
    url: str
    # Only filled in when request logging asks for them.
    timestamp: float = 0.0
    headers: list[tuple[str, str]] | None = None
    body: bytes | None = None


@dataclass(frozen=True)
class ResponseRecord:
    size: int
    status_code: int
    response_time: float = 0.0
    headers: list[tuple[str, str]] | None = None
    body: bytes | None = None


class LookupMiss(KeyError):
    """No request record was stashed under the given correlation key."""


class RequestStash:
    """Thread-safe map from correlation key to the request record captured for it.

    Records are removed when they are taken, so each one is consumed at most once.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[UUID, RequestRecord] = {}

    def put(self, key: UUID, record: RequestRecord) -> None:
        with self._lock:
            self._records[key] = record

    def take(self, key: UUID) -> RequestRecord:
        with self._lock:
            record = self._records.pop(key, None)
        if record is None:
            raise LookupMiss(key)
        return record

    def discard(self, key: UUID) -> None:
        with self._lock:
            self._records.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records
