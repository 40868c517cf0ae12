from __future__ import annotations

import json
import logging
from pathlib import Path

from codeticket.utils.logging import JsonFormatter, _json_formatter, configure_logging

EXPECTED_WATERMARK = 600
EXPECTED_CHUNK = 3


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_extra_fields() -> None:
    record = _record("[CHUNK COMMITTED] import #3")
    record.watermark = EXPECTED_WATERMARK
    record.step = "import"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "[CHUNK COMMITTED] import #3"
    assert payload["watermark"] == EXPECTED_WATERMARK
    assert payload["step"] == "import"
    assert "lineno" not in payload


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"chunk": EXPECTED_CHUNK}

    payload = json.loads(_json_formatter(record))

    assert payload["chunk"] == EXPECTED_CHUNK


def test_json_formatter_serialises_non_json_values() -> None:
    record = _record()
    record.source = Path("files/a.csv")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["source"] == "files/a.csv"


def test_configure_logging_switches_formatter() -> None:
    configure_logging(level="DEBUG", json_logs=True)
    assert any(isinstance(h.formatter, JsonFormatter) for h in logging.getLogger().handlers)
    assert logging.getLogger().level == logging.DEBUG

    configure_logging(level="INFO", json_logs=False)
    assert not any(isinstance(h.formatter, JsonFormatter) for h in logging.getLogger().handlers)
