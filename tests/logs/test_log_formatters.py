"""Tests for JSON and console log formatters."""

import json
import logging
import sys

import pytest

from connauth.logging.context import (
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from connauth.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(
    msg="test message",
    level=logging.INFO,
    name="test.logger",
    exc_info=None,
    **extras,
):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


class TestJSONFormatter:

    def test_formats_basic_json_with_required_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")

    def test_includes_context(self):
        set_log_context(component="orders-db", operation="init")
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["component"] == "orders-db"
        assert output["operation"] == "init"

    def test_extra_fields(self):
        record = _make_record(auth_mode="azure_ad", scope="https://x/.default", region="us-east-1")
        output = json.loads(JSONFormatter().format(record))

        assert output["auth_mode"] == "azure_ad"
        assert output["scope"] == "https://x/.default"
        assert output["region"] == "us-east-1"

    def test_unknown_extras_ignored(self):
        output = json.loads(JSONFormatter().format(_make_record(client_secret="hunter2")))
        assert "client_secret" not in output

    def test_numeric_fields_coerced(self):
        output = json.loads(JSONFormatter().format(_make_record(max_size="8", page="bad")))
        assert output["max_size"] == 8
        assert output["page"] is None

    def test_redacts_key_value_password(self):
        record = _make_record(error="connect failed: host=db user=app password=hunter2 sslmode=require")
        output = json.loads(JSONFormatter().format(record))

        assert "hunter2" not in output["error"]
        assert "sslmode=require" in output["error"]

    def test_redacts_url_userinfo(self):
        record = _make_record(endpoint="postgres://app:hunter2@db:5432/orders")
        output = json.loads(JSONFormatter().format(record))

        assert "hunter2" not in output["endpoint"]
        assert output["endpoint"].startswith("postgres://app:[REDACTED]@db")

    def test_redacts_signed_token_in_message(self):
        record = _make_record(
            msg="token db:5432/?Action=connect&DBUser=app&X-Amz-Signature=abc123&X-Amz-Date=1"
        )
        output = json.loads(JSONFormatter().format(record))

        assert "abc123" not in output["message"]
        assert "X-Amz-Date=1" in output["message"]

    def test_source_location_for_debug(self):
        output = json.loads(JSONFormatter().format(_make_record(level=logging.DEBUG)))
        assert output["file"] == "test.py:42"

    def test_exception_info(self):
        try:
            raise ValueError("password=hunter2 rejected")
        except ValueError:
            record = _make_record(level=logging.ERROR, exc_info=sys.exc_info())
        output = json.loads(JSONFormatter().format(record))

        assert output["exception"]["type"] == "ValueError"
        assert "hunter2" not in output["exception"]["message"]

    def test_uncoercible_numeric_field_is_null(self):
        output = json.loads(JSONFormatter().format(_make_record(secret_count="many")))
        assert output["secret_count"] is None


class TestConsoleFormatter:

    def test_plain_output(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = False
        line = formatter.format(_make_record(msg="hello"))

        assert line.endswith(" - INFO - hello")

    def test_context_and_tags(self):
        formatter = ConsoleFormatter()
        formatter._use_colors = False
        with LogContext(component="orders-db"):
            line = formatter.format(_make_record(msg="built", auth_mode="aws_iam"))

        assert "[orders-db]" in line
        assert "[auth:aws_iam] built" in line


class TestLogContext:

    def test_restores_previous_context(self):
        set_log_context(component="outer")
        with LogContext(component="inner", operation="bulk_get"):
            assert get_log_context()["component"] == "inner"

        assert get_log_context() == {"component": "outer", "operation": "", "trace_id": ""}
