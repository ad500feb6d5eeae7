"""
Connection pool configuration for Postgres components.

ConnectionConfigBuilder turns validated PostgresAuthMetadata into a
ConnectionPoolConfig. For Azure AD it installs a before-connect hook that
fetches a fresh token for every physical connection the pool opens, so
connections re-established after token expiry still authenticate.

The config is consumed by psycopg_pool through open_pool(), or by any pool
that can call ``before_connect(params)`` right before connecting.

Example:
    >>> meta = PostgresAuthMetadata.parse(metadata, AuthCapabilities(azure_ad_enabled=True))
    >>> config = ConnectionConfigBuilder().build(meta)
    >>> pool = await open_pool(config, name="state-store")
    >>> async with pool.connection() as conn:
    ...     await conn.execute("SELECT 1")
"""

import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from urllib.parse import unquote, urlsplit, urlunsplit

import psycopg
from psycopg import AsyncClientCursor, AsyncConnection
from psycopg.conninfo import conninfo_to_dict
from psycopg_pool import AsyncConnectionPool

from connauth.auth.aws_environment import IamOptions
from connauth.auth.azure_credentials import AzureCredentialProvider
from connauth.auth.azure_environment import SERVICE_OSS_RDBMS, AzureEnvironmentSettings
from connauth.auth.token_hooks import AzureADTokenSource, create_before_connect_hook
from connauth.errors import ConfigError, ConfigErrorReason, CredentialUnavailableError
from connauth.metadata import parse_duration, parse_int
from connauth.postgres.metadata import PostgresAuthMetadata
from connauth.types import AuthMode, BeforeConnectHook, QueryExecMode

logger = logging.getLogger(__name__)


# Pool defaults used when neither metadata nor the connection string set them
DEFAULT_MIN_CONNS = 0
DEFAULT_MAX_CONNS = max(4, os.cpu_count() or 1)
DEFAULT_MAX_CONN_IDLE_TIME = timedelta(minutes=30)
DEFAULT_MAX_CONN_LIFETIME = timedelta(hours=1)

# psycopg's own default: prepare after a statement is seen this many times
PSYCOPG_DEFAULT_PREPARE_THRESHOLD = 5

QUERY_EXEC_MODES = {mode.value: mode for mode in QueryExecMode}

# Pool settings accepted inside the connection string; libpq rejects them
POOL_PARAM_KEYS = frozenset(
    {
        "pool_max_conns",
        "pool_min_conns",
        "pool_max_conn_lifetime",
        "pool_max_conn_idle_time",
    }
)

_URL_PREFIXES = ("postgresql://", "postgres://")
_KEYWORD_PAIR = re.compile(r"\s*(\w+)\s*=\s*('(?:[^'\\]|\\.)*'|(?:[^\s'\\]|\\.)*)")


@dataclass
class ConnectionPoolConfig:
    """
    Everything the pool needs to open connections.

    Attributes:
        conn_params: libpq connection parameters (host, port, user, dbname,
            sslmode, ...). The password is absent in token-based modes.
        min_size: Minimum pool size
        max_size: Maximum pool size
        max_idle: Idle time after which surplus connections are closed
        max_lifetime: Maximum age of a connection
        query_exec_mode: Statement execution mode
        before_connect: Hook awaited with the per-attempt connection
            parameters before each physical connection
        auth_mode: Authentication mode the config was built for
        iam_options: AWS session options (AWS IAM mode only)
    """

    conn_params: dict[str, str] = field(default_factory=dict, repr=False)
    min_size: int = DEFAULT_MIN_CONNS
    max_size: int = DEFAULT_MAX_CONNS
    max_idle: timedelta = DEFAULT_MAX_CONN_IDLE_TIME
    max_lifetime: timedelta = DEFAULT_MAX_CONN_LIFETIME
    query_exec_mode: QueryExecMode = QueryExecMode.CACHE_STATEMENT
    before_connect: BeforeConnectHook | None = field(default=None, repr=False)
    auth_mode: AuthMode = AuthMode.NONE
    iam_options: IamOptions | None = None
    credential_provider: AzureCredentialProvider | None = field(default=None, repr=False)

    def connect_kwargs(self) -> dict[str, Any]:
        """
        Keyword arguments for psycopg's AsyncConnection.connect.

        The execution mode maps onto psycopg's prepared-statement threshold;
        the simple protocol additionally binds parameters client-side.
        """
        kwargs: dict[str, Any] = dict(self.conn_params)
        mode = self.query_exec_mode
        if mode == QueryExecMode.CACHE_STATEMENT:
            kwargs["prepare_threshold"] = 0
        elif mode == QueryExecMode.CACHE_DESCRIBE:
            kwargs["prepare_threshold"] = PSYCOPG_DEFAULT_PREPARE_THRESHOLD
        else:
            kwargs["prepare_threshold"] = None
        if mode == QueryExecMode.SIMPLE_PROTOCOL:
            kwargs["cursor_factory"] = AsyncClientCursor
        return kwargs

    def connection_class(self) -> type[AsyncConnection]:
        """
        Connection class the pool should instantiate.

        With a before-connect hook, returns a subclass whose connect() copies
        the keyword arguments, lets the hook update the copy, and connects
        with it. Each attempt works on its own copy.
        """
        hook = self.before_connect
        if hook is None:
            return AsyncConnection

        class HookedConnection(AsyncConnection):
            @classmethod
            async def connect(cls, conninfo: str = "", **kwargs: Any):
                params = dict(kwargs)
                await hook(params)
                return await super().connect(conninfo, **params)

        return HookedConnection

    def pool_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for psycopg_pool.AsyncConnectionPool."""
        return {
            "conninfo": "",
            "kwargs": self.connect_kwargs(),
            "min_size": self.min_size,
            "max_size": self.max_size,
            "max_idle": self.max_idle.total_seconds(),
            "max_lifetime": self.max_lifetime.total_seconds(),
            "connection_class": self.connection_class(),
        }

    async def close(self) -> None:
        """Release the credential provider held for the hook, if any."""
        if self.credential_provider is not None:
            await self.credential_provider.close()


def split_pool_params(connection_string: str) -> tuple[str, dict[str, str]]:
    """
    Remove pool_* settings from a connection string.

    Works on both URL and key/value connection strings.

    Returns:
        The connection string without pool settings, and the pool settings
    """
    if connection_string.startswith(_URL_PREFIXES):
        # libpq only percent-decodes, so kept segments stay byte-for-byte
        parts = urlsplit(connection_string)
        pool_params = {}
        kept_segments = []
        for segment in parts.query.split("&"):
            key, _, value = segment.partition("=")
            if unquote(key).startswith("pool_"):
                pool_params[unquote(key)] = unquote(value)
            elif segment:
                kept_segments.append(segment)
        if not pool_params:
            return connection_string, {}
        return urlunsplit(parts._replace(query="&".join(kept_segments))), pool_params

    pool_params = {}
    kept: list[str] = []
    pos = 0
    for match in _KEYWORD_PAIR.finditer(connection_string):
        key, value = match.group(1), match.group(2)
        if not key.startswith("pool_"):
            continue
        kept.append(connection_string[pos:match.start()])
        pos = match.end()
        if value.startswith("'") and value.endswith("'") and len(value) >= 2:
            value = value[1:-1]
        pool_params[key] = re.sub(r"\\(.)", r"\1", value)
    kept.append(connection_string[pos:])
    return "".join(kept).strip(), pool_params


def parse_connection_string(connection_string: str) -> ConnectionPoolConfig:
    """
    Parse a connection string into a base pool configuration.

    Raises:
        ConfigError: INVALID_CONNECTION_STRING if libpq rejects the string
            or a pool_* setting is unknown or malformed
    """
    cleaned, pool_params = split_pool_params(connection_string)
    try:
        conn_params = conninfo_to_dict(cleaned)
    except psycopg.ProgrammingError as e:
        raise ConfigError(
            ConfigErrorReason.INVALID_CONNECTION_STRING,
            "failed to parse connection string",
            cause=e,
        ) from e

    config = ConnectionPoolConfig(
        conn_params={key: str(value) for key, value in conn_params.items()}
    )
    _apply_pool_params(config, pool_params)
    return config


def _apply_pool_params(config: ConnectionPoolConfig, pool_params: dict[str, str]) -> None:
    unknown = set(pool_params).difference(POOL_PARAM_KEYS)
    if unknown:
        raise ConfigError(
            ConfigErrorReason.INVALID_CONNECTION_STRING,
            f"unknown pool settings in connection string: {', '.join(sorted(unknown))}",
        )
    try:
        if "pool_max_conns" in pool_params:
            config.max_size = parse_int(pool_params["pool_max_conns"])
            if config.max_size < 1:
                raise ValueError("pool_max_conns too small")
        if "pool_min_conns" in pool_params:
            config.min_size = parse_int(pool_params["pool_min_conns"])
            if config.min_size < 0:
                raise ValueError("pool_min_conns must not be negative")
        if "pool_max_conn_lifetime" in pool_params:
            config.max_lifetime = parse_duration(pool_params["pool_max_conn_lifetime"])
        if "pool_max_conn_idle_time" in pool_params:
            config.max_idle = parse_duration(pool_params["pool_max_conn_idle_time"])
    except ValueError as e:
        raise ConfigError(
            ConfigErrorReason.INVALID_CONNECTION_STRING,
            f"invalid pool setting in connection string: {e}",
            cause=e,
        ) from e


class ConnectionConfigBuilder:
    """
    Builds a ConnectionPoolConfig from PostgresAuthMetadata.

    Args:
        azure_provider_factory: Creates the Azure credential provider from
            the resolved environment settings
    """

    def __init__(
        self,
        azure_provider_factory: Callable[
            [AzureEnvironmentSettings], AzureCredentialProvider
        ] = AzureCredentialProvider,
    ):
        self._azure_provider_factory = azure_provider_factory

    def build(self, meta: PostgresAuthMetadata) -> ConnectionPoolConfig:
        """
        Build the pool configuration.

        Raises:
            ConfigError: Invalid connection string or execution mode, or
                missing AWS region
            CredentialUnavailableError: Azure AD cannot provide a credential
        """
        config = parse_connection_string(meta.connection_string)

        if meta.connection_max_idle_time > timedelta(0):
            config.max_idle = meta.connection_max_idle_time
        if meta.max_conns > 1:
            config.max_size = meta.max_conns
        if config.min_size > config.max_size:
            raise ConfigError(
                ConfigErrorReason.INVALID_METADATA,
                f"minimum pool size {config.min_size} exceeds maximum {config.max_size}",
            )

        if meta.query_exec_mode:
            mode = QUERY_EXEC_MODES.get(meta.query_exec_mode)
            if mode is None:
                raise ConfigError(
                    ConfigErrorReason.INVALID_EXECUTION_MODE,
                    f"invalid queryExecMode metadata value: {meta.query_exec_mode}",
                )
            config.query_exec_mode = mode

        config.auth_mode = meta.auth_mode
        if meta.auth_mode == AuthMode.AZURE_AD:
            self._configure_azure_ad(meta, config)
        elif meta.auth_mode == AuthMode.AWS_IAM:
            config.iam_options = meta.build_iam_options()

        logger.info(
            "Built Postgres pool configuration",
            extra={
                "auth_mode": config.auth_mode.value,
                "max_size": config.max_size,
                "query_exec_mode": config.query_exec_mode.value,
            },
        )
        return config

    def _configure_azure_ad(
        self, meta: PostgresAuthMetadata, config: ConnectionPoolConfig
    ) -> None:
        env = meta.azure_env
        if env is None:
            raise CredentialUnavailableError("Azure environment was not resolved")

        provider = self._azure_provider_factory(env)
        credential = provider.get_token_credential()

        # The static password is never combined with the token
        config.conn_params.pop("password", None)

        source = AzureADTokenSource(credential, env.scope(SERVICE_OSS_RDBMS))
        config.before_connect = create_before_connect_hook(source)
        config.credential_provider = provider


async def open_pool(
    config: ConnectionPoolConfig,
    name: str | None = None,
    wait: bool = False,
    timeout: float = 30.0,
) -> AsyncConnectionPool:
    """
    Open a psycopg_pool AsyncConnectionPool from a configuration.

    Args:
        config: Pool configuration
        name: Pool name used in psycopg_pool logs
        wait: Wait until min_size connections are established
        timeout: Seconds to wait when ``wait`` is set
    """
    pool = AsyncConnectionPool(name=name, open=False, **config.pool_kwargs())
    await pool.open(wait=wait, timeout=timeout)
    logger.info(
        "Opened Postgres connection pool",
        extra={"pool_name": name, "auth_mode": config.auth_mode.value},
    )
    return pool


__all__ = [
    "ConnectionConfigBuilder",
    "ConnectionPoolConfig",
    "DEFAULT_MAX_CONNS",
    "DEFAULT_MAX_CONN_IDLE_TIME",
    "DEFAULT_MAX_CONN_LIFETIME",
    "DEFAULT_MIN_CONNS",
    "QUERY_EXEC_MODES",
    "open_pool",
    "parse_connection_string",
    "split_pool_params",
]
