"""
Structured logging module.

Provides JSON and console logging with context propagation and
credential redaction.
"""

from connauth.logging.context import (
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from connauth.logging.formatters import ConsoleFormatter, JSONFormatter
from connauth.logging.setup import NOISY_LOGGERS, get_logger, setup_logging

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    "NOISY_LOGGERS",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "LogContext",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
]
