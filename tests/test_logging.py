import json
import logging

from core.logging import JsonFormatter, get_logger


def test_get_logger_idempotent() -> None:
    logger1 = get_logger("test.logger")
    handlers_before = list(logger1.handlers)
    logger2 = get_logger("test.logger")
    assert logger1 is logger2
    assert len(logger1.handlers) == len(handlers_before)


def test_json_formatter_whitelisted_extra() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.fixture_id = 42
    record.secret = "nope"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["fixture_id"] == 42
    assert "secret" not in payload
