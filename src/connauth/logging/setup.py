"""Logging setup and configuration."""

import logging
import os
import sys

from connauth.logging.context import set_log_context
from connauth.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LEVEL = logging.INFO

LOG_LEVEL_ENV = "CONNAUTH_LOG_LEVEL"
LOG_FORMAT_ENV = "CONNAUTH_LOG_FORMAT"

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "botocore",
    "boto3",
    "urllib3",
    "aiohttp",
    "psycopg.pool",
]


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "")
    if isinstance(level, int):
        return level
    if not level:
        return DEFAULT_LEVEL
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _resolve_json_format(json_format: bool | None) -> bool:
    if json_format is not None:
        return json_format
    return os.getenv(LOG_FORMAT_ENV, "console").strip().lower() == "json"


def setup_logging(
    name: str = "connauth",
    component: str | None = None,
    json_format: bool | None = None,
    level: int | str | None = None,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Configure root logging with a single stdout handler.

    Args:
        name: Logger name to return
        component: Component name injected into every record's context
        json_format: JSON lines instead of console text (default: from
            CONNAUTH_LOG_FORMAT, "json" or "console")
        level: Handler level (default: from CONNAUTH_LOG_LEVEL, else INFO)
        suppress_noisy: Quiet down Azure SDK, botocore and HTTP client loggers

    Returns:
        Configured logger instance

    Raises:
        ValueError: If the level name is unknown
    """
    resolved_level = _resolve_level(level)
    use_json = _resolve_json_format(json_format)

    if component:
        set_log_context(component=component)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        f"Logging initialized: json={use_json}",
        extra={"component_type": component or "unknown"},
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Use this instead of logging.getLogger() to ensure consistent naming.
    """
    return logging.getLogger(name)
