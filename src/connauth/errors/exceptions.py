"""
Unified exception hierarchy for connauth.

Provides typed exceptions with retry classification so callers (and the
connection pool) can tell configuration problems from authentication and
secret-store failures.
"""

from enum import Enum

from connauth.types import ErrorCategory


class ConnAuthError(Exception):
    """
    Base exception for all connauth errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Configuration Errors (Permanent)
# =============================================================================


class ConfigErrorReason(Enum):
    """Why a component configuration was rejected."""

    MISSING_CONNECTION_STRING = "missing_connection_string"
    INVALID_CONNECTION_STRING = "invalid_connection_string"
    INVALID_EXECUTION_MODE = "invalid_execution_mode"
    INVALID_METADATA = "invalid_metadata"
    MISSING_REGION = "missing_region"
    ENVIRONMENT_RESOLUTION_FAILED = "environment_resolution_failed"
    CREDENTIAL_UNAVAILABLE = "credential_unavailable"


class ConfigError(ConnAuthError):
    """
    Missing or invalid user-supplied configuration.

    Raised at initialization time; the component refuses to start.
    """

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        reason: ConfigErrorReason,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.reason = reason


class EnvironmentResolutionError(ConfigError):
    """Malformed cloud or region settings."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            ConfigErrorReason.ENVIRONMENT_RESOLUTION_FAILED, message, cause, context
        )


class CredentialUnavailableError(ConfigError):
    """The identity provider cannot produce a credential handle."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            ConfigErrorReason.CREDENTIAL_UNAVAILABLE, message, cause, context
        )


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(ConnAuthError):
    """Base class for authentication errors."""

    category = ErrorCategory.AUTH


class TokenAcquisitionError(AuthError):
    """A per-connection token request failed; the attempt is aborted."""

    pass


class AwsAuthError(AuthError):
    """AWS session or role assumption could not be established."""

    pass


# =============================================================================
# Secret Store Errors
# =============================================================================


class SecretStoreError(ConnAuthError):
    """Error from secret store operations."""

    category = ErrorCategory.TRANSIENT


class SecretNotFoundError(SecretStoreError):
    """The requested secret (or version) does not exist."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        secret_name: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(f"secret not found: {secret_name}", cause, context)
        self.secret_name = secret_name


class SecretFetchError(SecretStoreError):
    """Fetching one entry during a bulk read failed."""

    def __init__(
        self,
        entry_name: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(f"couldn't get secret: {entry_name}", cause, context)
        self.entry_name = entry_name


# =============================================================================
# Classification Utilities
# =============================================================================

# Markers for string-based detection (fallback for foreign exceptions)
AUTH_ERROR_MARKERS = frozenset(
    {
        "401",
        "unauthorized",
        "authentication",
        "token expired",
        "invalid token",
        "access token",
        "password authentication failed",
        "aadsts",
    }
)


def is_auth_error(exc: Exception) -> bool:
    """
    Check if exception is authentication-related.

    Typed errors use their category; anything else falls back to
    message matching.
    """
    if isinstance(exc, ConnAuthError):
        return exc.category == ErrorCategory.AUTH

    error_str = str(exc).lower()
    return any(marker in error_str for marker in AUTH_ERROR_MARKERS)


def is_retryable_error(exc: Exception) -> bool:
    """
    Check if exception may succeed when the operation is attempted again.

    Configuration errors and missing secrets are never retryable.
    """
    if isinstance(exc, ConnAuthError):
        return exc.is_retryable
    return is_auth_error(exc)
