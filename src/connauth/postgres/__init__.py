"""
Postgres authentication and pool configuration.

Provides:
- PostgresAuthMetadata: validated component metadata and auth mode
- ConnectionConfigBuilder: pool configuration with per-connection token hook
- open_pool: psycopg_pool integration
"""

from connauth.postgres.metadata import (
    AuthCapabilities,
    PostgresAuthMetadata,
    resolve_auth_mode,
)
from connauth.postgres.pool_config import (
    ConnectionConfigBuilder,
    ConnectionPoolConfig,
    open_pool,
    parse_connection_string,
)

__all__ = [
    "AuthCapabilities",
    "ConnectionConfigBuilder",
    "ConnectionPoolConfig",
    "PostgresAuthMetadata",
    "open_pool",
    "parse_connection_string",
    "resolve_auth_mode",
]
