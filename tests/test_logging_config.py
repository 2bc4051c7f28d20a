from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("services.query", logging.INFO, __file__, 1, "Served query", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_in_declared_order() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    message = formatter.format(_record(bucket_count=2, device_id="sensor-1", other="x"))

    assert message == "Served query | device_id=sensor-1 bucket_count=2"


def test_formatter_quotes_values_with_spaces_and_skips_none() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["reason", "interval"])

    message = formatter.format(_record(reason="unrecognized unit", interval=None))

    assert message == "Served query | reason='unrecognized unit'"


def test_formatter_without_context_returns_plain_message() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record()) == "Served query"
