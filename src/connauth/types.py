"""
Core types and protocols used across modules.

This module provides the enums and protocol definitions shared by the
metadata parser, the credential providers and the pool configuration.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, MutableMapping, Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on retry
                   (e.g., throttled secret lookups, network timeouts)
        AUTH: Authentication failures (e.g., token acquisition refused)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., missing or malformed configuration)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class AuthMode(Enum):
    """Authentication strategy selected for a Postgres connection."""

    NONE = "none"
    AZURE_AD = "azure_ad"
    AWS_IAM = "aws_iam"


class QueryExecMode(Enum):
    """
    How the driver plans and caches statements.

    Values match the user-facing ``queryExecMode`` metadata strings.
    """

    CACHE_STATEMENT = "cache_statement"
    CACHE_DESCRIBE = "cache_describe"
    DESCRIBE_EXEC = "describe_exec"
    EXEC = "exec"
    SIMPLE_PROTOCOL = "simple_protocol"


# Invoked by the pool with the per-attempt connection parameters
BeforeConnectHook = Callable[[MutableMapping[str, Any]], Awaitable[None]]


class TransientCredentialSource(Protocol):
    """
    Protocol for per-attempt credential producers.

    Implementations hand back a short-lived secret (an access token or a
    signed auth token) to be used as the password of one connection attempt.
    """

    async def get_password(self) -> str:
        """
        Produce a fresh credential for the current connection attempt.

        Raises:
            AuthError: If the credential cannot be obtained
        """
        ...


__all__ = [
    "AuthMode",
    "BeforeConnectHook",
    "ErrorCategory",
    "QueryExecMode",
    "TransientCredentialSource",
]
