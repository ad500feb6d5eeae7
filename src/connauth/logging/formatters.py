"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

from connauth.logging.context import get_log_context


def json_serializer(obj: Any) -> Any:
    """
    Fallback serializer for values json cannot encode natively.

    - datetime/date: ISO 8601 string
    - timedelta: total seconds as float
    - Enum: its value
    - Everything else: str()
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line. Connection strings and URLs are
    sanitized so passwords, tokens and signatures never reach the output.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "trace_id",
        # Errors
        "error",
        # Auth
        "auth_mode",
        "auth_methods",
        "scope",
        "cloud",
        "use_azure_ad",
        "use_aws_iam",
        "region",
        "endpoint",
        "session_name",
        "role_arn",
        "tenant_id",
        "client_id",
        "static_keys",
        "assume_role",
        # Connection
        "host",
        "query_exec_mode",
        "pool_name",
        "max_size",
        # Secrets
        "secret_name",
        "secret_count",
        "page",
        # Configuration
        "config_path",
        "component_type",
    ]

    NUMERIC_FIELDS = {
        "max_size": int,
        "secret_count": int,
        "page": int,
    }

    # Fields that may embed credentials
    URL_FIELDS = ["endpoint", "error"]

    # Sensitive query parameters in URLs
    SENSITIVE_PARAMS_PATTERN = re.compile(
        r"([?&])(sig|token|key|secret|password|X-Amz-Signature|X-Amz-Security-Token)=[^&\s]*",
        re.IGNORECASE,
    )
    # password=... in libpq key/value strings
    KV_PASSWORD_PATTERN = re.compile(r"(\bpassword\s*=\s*)('(?:[^'\\]|\\.)*'|\S+)", re.IGNORECASE)
    # user:password@ in libpq URLs
    URL_USERINFO_PATTERN = re.compile(r"(://[^:/@\s]+:)[^@\s]*@")

    def _sanitize_url(self, url: str) -> str:
        url = self.SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", url)
        url = self.KV_PASSWORD_PATTERN.sub(r"\1[REDACTED]", url)
        return self.URL_USERINFO_PATTERN.sub(r"\1[REDACTED]@", url)

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return self._sanitize_url(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("component", "operation", "trace_id"):
            if log_context[field]:
                log_entry[field] = log_context[field]

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": self._sanitize_url(str(exc_value)) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        log_entry["message"] = self._sanitize_url(log_entry["message"])

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]

        if log_context["component"]:
            parts.append(f"[{log_context['component']}]")
        if log_context["operation"]:
            parts.append(f"[{log_context['operation']}]")

        return " - ".join(parts)

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        auth_mode = getattr(record, "auth_mode", None)
        trace_id = getattr(record, "trace_id", None) or log_context.get("trace_id")

        tags = []
        if auth_mode:
            tags.append(f"[auth:{auth_mode}]")
        if trace_id:
            tags.append(f"[{trace_id[:8]}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        level_name = self._format_level_name(record)
        prefix = self._build_prefix(level_name, log_context)
        tags = self._build_tags(record, log_context)

        if tags:
            return f"{prefix} - {' '.join(tags)} {record.getMessage()}"

        return f"{prefix} - {record.getMessage()}"
