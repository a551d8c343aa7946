from __future__ import annotations

import json
import logging

from failover_probe.utils.logging import _json_formatter

EXPECTED_ID = 1042


def _record(msg: str = "insert data") -> logging.LogRecord:
    return logging.LogRecord(
        name="failover_probe.generator",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_extra_fields() -> None:
    record = _record()
    record.id = EXPECTED_ID
    record.error = "server closed the connection unexpectedly"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "failover_probe.generator"
    assert payload["message"] == "insert data"
    assert payload["id"] == EXPECTED_ID
    assert payload["error"] == "server closed the connection unexpectedly"
    assert "lineno" not in payload

