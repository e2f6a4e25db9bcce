"""Tests for log formatting."""

import json
import logging

from customer_vault.logging_config import (
    DevelopmentFormatter,
    StructuredFormatter,
    setup_logging,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="customer_vault.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Session created",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_structured_is_json_with_context(self):
        line = StructuredFormatter().format(_record(user_id="u-1", session_id="s-1"))
        data = json.loads(line)

        assert data["message"] == "Session created"
        assert data["level"] == "INFO"
        assert data["user_id"] == "u-1"
        assert data["session_id"] == "s-1"

    def test_unknown_extra_fields_dropped(self):
        data = json.loads(StructuredFormatter().format(_record(token="secret-bearer")))
        assert "token" not in data

    def test_development_format(self):
        line = DevelopmentFormatter().format(_record(customer_id="c-9"))
        assert "INFO" in line
        assert "Session created" in line
        assert "customer_id=c-9" in line


class TestSetup:

    def test_single_handler_installed(self):
        setup_logging(level="DEBUG", json_logs=True)
        setup_logging(level="DEBUG", json_logs=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.DEBUG

        setup_logging(level="INFO", json_logs=False)
        assert isinstance(root.handlers[0].formatter, DevelopmentFormatter)
