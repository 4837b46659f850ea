import logging

import structlog

from request_tally.observability import logging as tally_logging


def _restore(root: logging.Logger, handlers: list, level: int) -> None:
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger(tally_logging.PACKAGE_LOGGER).setLevel(logging.NOTSET)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
    structlog.reset_defaults()


def test_configure_logging_installs_one_json_handler_and_is_idempotent(monkeypatch) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setattr(tally_logging, "_CONFIGURED", False)

    try:
        tally_logging.configure_logging("debug")
        handler = root.handlers[0]

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
        assert logging.getLogger("uvicorn.access").handlers == [handler]

        tally_logging.configure_logging(logging.ERROR)
        assert root.handlers == [handler]
        assert root.level == logging.DEBUG
    finally:
        _restore(root, saved_handlers, saved_level)


def test_tally_loggers_get_their_own_level(monkeypatch) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setattr(tally_logging, "_CONFIGURED", False)

    try:
        tally_logging.configure_logging("WARNING", tally_level="debug")

        assert root.level == logging.WARNING
        assert logging.getLogger("request_tally.client").getEffectiveLevel() == logging.DEBUG
        assert logging.getLogger("uvicorn").level == logging.WARNING
    finally:
        _restore(root, saved_handlers, saved_level)


def test_tally_level_follows_root_when_unset(monkeypatch) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setattr(tally_logging, "_CONFIGURED", False)

    try:
        tally_logging.configure_logging("not-a-level")

        assert root.level == logging.INFO
        assert logging.getLogger("request_tally").level == logging.INFO
    finally:
        _restore(root, saved_handlers, saved_level)
