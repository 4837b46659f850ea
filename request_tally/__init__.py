from request_tally.observability.client import TallyClient
from request_tally.observability.middleware import TallyMiddleware
from request_tally.observability.stash import LookupMiss, RequestRecord, RequestStash, ResponseRecord

__all__ = [
    "LookupMiss",
    "RequestRecord",
    "RequestStash",
    "ResponseRecord",
    "TallyClient",
    "TallyMiddleware",
]
