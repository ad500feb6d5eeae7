"""
Authentication metadata for Postgres components.

Parses the user's component metadata into a validated PostgresAuthMetadata
and decides which authentication mode is active.

Metadata keys (case-insensitive):
    connectionString (alias: url): libpq URL or key/value string, required
    connectionMaxIdleTime: Go-style duration or integer seconds
    maxConns: Pool size; values <= 1 leave the pool default
    queryExecMode: Statement execution mode
    useAzureAD: Authenticate with Azure AD tokens
    useAWSIAM: Authenticate with AWS IAM

Example:
    >>> meta = PostgresAuthMetadata.parse(
    ...     {"connectionString": "host=db user=app", "useAzureAD": "true"},
    ...     AuthCapabilities(azure_ad_enabled=True),
    ... )
    >>> meta.auth_mode
    <AuthMode.AZURE_AD: 'azure_ad'>
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from connauth.auth.aws_environment import (
    AwsEnvironmentSettings,
    IamOptions,
    build_iam_options,
)
from connauth.auth.azure_environment import AzureEnvironmentSettings
from connauth.errors import ConfigError, ConfigErrorReason
from connauth.metadata import get_metadata_property, is_truthy, parse_duration, parse_int
from connauth.types import AuthMode

if TYPE_CHECKING:
    from connauth.postgres.pool_config import ConnectionPoolConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthCapabilities:
    """
    Authentication modes the calling component can support.

    This is different from the useAzureAD/useAWSIAM flags, which are provided
    by the user and request a mode.
    """

    azure_ad_enabled: bool = False
    aws_iam_enabled: bool = False


def resolve_auth_mode(
    use_azure_ad: bool,
    use_aws_iam: bool,
    azure_ad_enabled: bool,
    aws_iam_enabled: bool,
) -> AuthMode:
    """
    Collapse the requested flags and capabilities into one mode.

    Azure AD takes precedence over AWS IAM. A request for a mode the
    component does not support falls back to NONE without error.
    """
    if azure_ad_enabled and use_azure_ad:
        return AuthMode.AZURE_AD
    if aws_iam_enabled and use_aws_iam:
        return AuthMode.AWS_IAM
    return AuthMode.NONE


@dataclass
class PostgresAuthMetadata:
    """
    Validated authentication metadata for a Postgres component.

    Built once at component initialization and read-only afterwards, except
    for reset(), which must not run concurrently with a build or connect.
    """

    connection_string: str = field(default="", repr=False)
    connection_max_idle_time: timedelta = timedelta(0)
    max_conns: int = 0
    use_azure_ad: bool = False
    use_aws_iam: bool = False
    query_exec_mode: str = ""

    azure_env: AzureEnvironmentSettings | None = field(default=None, repr=False)
    aws_env: AwsEnvironmentSettings | None = field(default=None, repr=False)

    @property
    def auth_mode(self) -> AuthMode:
        if self.use_azure_ad:
            return AuthMode.AZURE_AD
        if self.use_aws_iam:
            return AuthMode.AWS_IAM
        return AuthMode.NONE

    def reset(self) -> None:
        """Clear every field so the instance can be reused."""
        self.connection_string = ""
        self.connection_max_idle_time = timedelta(0)
        self.max_conns = 0
        self.use_azure_ad = False
        self.use_aws_iam = False
        self.query_exec_mode = ""
        self.azure_env = None
        self.aws_env = None

    @classmethod
    def parse(
        cls,
        meta: Mapping[str, str],
        capabilities: AuthCapabilities | None = None,
    ) -> "PostgresAuthMetadata":
        """
        Parse and validate metadata into a new instance.

        Raises:
            ConfigError: Missing connection string or invalid values
            EnvironmentResolutionError: Malformed cloud or region settings
        """
        instance = cls()
        instance.init_with_metadata(meta, capabilities)
        return instance

    def init_with_metadata(
        self,
        meta: Mapping[str, str],
        capabilities: AuthCapabilities | None = None,
    ) -> None:
        """
        Populate this instance from user metadata.

        Args:
            meta: Component metadata
            capabilities: Modes the component supports (default: none)

        Raises:
            ConfigError: Missing connection string or invalid values
            EnvironmentResolutionError: Malformed cloud or region settings

        Note:
            Nothing is assigned until every step succeeds; a failed call
            leaves the instance as it was.
        """
        capabilities = capabilities or AuthCapabilities()

        connection_string, _ = get_metadata_property(meta, "connectionString", "url")
        if not connection_string:
            raise ConfigError(
                ConfigErrorReason.MISSING_CONNECTION_STRING, "missing connection string"
            )
        idle_time = _decode_idle_time(meta)
        max_conns = _decode_max_conns(meta)

        use_azure_ad, _ = get_metadata_property(meta, "useAzureAD")
        use_aws_iam, _ = get_metadata_property(meta, "useAWSIAM")
        requested_azure_ad = is_truthy(use_azure_ad)
        requested_aws_iam = is_truthy(use_aws_iam)
        query_exec_mode, _ = get_metadata_property(meta, "queryExecMode")

        mode = resolve_auth_mode(
            requested_azure_ad,
            requested_aws_iam,
            capabilities.azure_ad_enabled,
            capabilities.aws_iam_enabled,
        )
        if (requested_azure_ad or requested_aws_iam) and mode == AuthMode.NONE:
            logger.debug(
                "Requested auth mode not supported by component, using connection string credentials",
                extra={"use_azure_ad": requested_azure_ad, "use_aws_iam": requested_aws_iam},
            )

        azure_env = None
        aws_env = None
        if mode == AuthMode.AZURE_AD:
            azure_env = AzureEnvironmentSettings.from_metadata(meta)
        elif mode == AuthMode.AWS_IAM:
            aws_env = AwsEnvironmentSettings.from_metadata(meta)

        self.connection_string = connection_string
        self.connection_max_idle_time = idle_time
        self.max_conns = max_conns
        self.query_exec_mode = query_exec_mode
        self.use_azure_ad = mode == AuthMode.AZURE_AD
        self.use_aws_iam = mode == AuthMode.AWS_IAM
        self.azure_env = azure_env
        self.aws_env = aws_env

        logger.debug("Parsed Postgres auth metadata", extra={"auth_mode": mode.value})

    def build_iam_options(self) -> IamOptions:
        """
        IAM options for AWS IAM mode.

        Raises:
            ConfigError: MISSING_REGION if no region is configured
        """
        return build_iam_options(self.aws_env or AwsEnvironmentSettings())

    def get_pool_config(self) -> "ConnectionPoolConfig":
        """Build the connection pool configuration for this metadata."""
        from connauth.postgres.pool_config import ConnectionConfigBuilder

        return ConnectionConfigBuilder().build(self)


def _decode_idle_time(meta: Mapping[str, str]) -> timedelta:
    idle, _ = get_metadata_property(meta, "connectionMaxIdleTime")
    try:
        idle_time = parse_duration(idle)
    except ValueError as e:
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            f"invalid connectionMaxIdleTime: {idle!r}",
            cause=e,
        ) from e
    if idle_time < timedelta(0):
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            f"connectionMaxIdleTime must not be negative: {idle!r}",
        )
    return idle_time


def _decode_max_conns(meta: Mapping[str, str]) -> int:
    max_conns, _ = get_metadata_property(meta, "maxConns")
    try:
        return parse_int(max_conns)
    except ValueError as e:
        raise ConfigError(
            ConfigErrorReason.INVALID_METADATA,
            f"invalid maxConns: {max_conns!r}",
            cause=e,
        ) from e


__all__ = [
    "AuthCapabilities",
    "PostgresAuthMetadata",
    "resolve_auth_mode",
]
