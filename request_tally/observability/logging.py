from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


PACKAGE_LOGGER = "request_tally"

_CONFIGURED = False


def _to_level(level: int | str | None, default: int) -> int:
    if level is None:
        return default
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else default


def configure_logging(level: int | str = logging.INFO, *, tally_level: int | str | None = None) -> None:
    """Send host and tally log events through one JSON handler on stdout.

    ``tally_level`` sets the ``request_tally.*`` loggers apart from the host app,
    e.g. DEBUG to see discarded collector deliveries without a DEBUG root logger.
    Safe to call multiple times (no-op after first call).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    root_level = _to_level(level, logging.INFO)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=pre_chain,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(root_level)

    # Handler level stays open so a chattier tally level is not cut off here.
    logging.getLogger(PACKAGE_LOGGER).setLevel(_to_level(tally_level, root_level))

    # The demo runs under uvicorn, which installs its own handlers.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = [handler]
        logger.propagate = False
        logger.setLevel(root_level)

    _CONFIGURED = True
