"""
Exception hierarchy and classification helpers.

Provides:
- ConnAuthError hierarchy for typed exceptions
- ConfigErrorReason for telling configuration failures apart
- Classification utilities for retry decisions
"""

from connauth.errors.exceptions import (
    AuthError,
    AwsAuthError,
    ConfigError,
    ConfigErrorReason,
    ConnAuthError,
    CredentialUnavailableError,
    EnvironmentResolutionError,
    SecretFetchError,
    SecretNotFoundError,
    SecretStoreError,
    TokenAcquisitionError,
    is_auth_error,
    is_retryable_error,
)

__all__ = [
    # Base
    "ConnAuthError",
    # Configuration
    "ConfigError",
    "ConfigErrorReason",
    "EnvironmentResolutionError",
    "CredentialUnavailableError",
    # Authentication
    "AuthError",
    "TokenAcquisitionError",
    "AwsAuthError",
    # Secret store
    "SecretStoreError",
    "SecretNotFoundError",
    "SecretFetchError",
    # Classification utilities
    "is_auth_error",
    "is_retryable_error",
]
