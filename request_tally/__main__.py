from __future__ import annotations

import argparse
import os

import uvicorn

from request_tally.config import get_settings
from request_tally.observability.logging import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the request tally demo API")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "3000")), help="Port to listen on")
    args = parser.parse_args()

    settings = get_settings()
    if not settings.client_id:
        parser.error("APITALLY_CLIENT_ID is not set (environment or .env)")

    configure_logging(settings.log_level, tally_level=settings.tally_log_level)
    uvicorn.run(
        "request_tally.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
