import logging

from harmony.log import configure_logging, request_logger


def test_request_logger_prefixes_request_and_component() -> None:
    log = request_logger("req-1")

    assert log.process("hello", {}) == ("[req-1] hello", {})
    assert log.child("wms.getMap").process("hello", {}) == ("[req-1] [wms.getMap] hello", {})


def test_configure_logging_is_idempotent() -> None:
    first = configure_logging(logging.DEBUG)
    second = configure_logging(logging.DEBUG)

    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    configure_logging()
