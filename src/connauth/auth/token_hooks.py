"""
Per-connection credential hooks for the Postgres connection pool.

The pool calls the before-connect hook immediately before opening each
physical connection, including reconnects. The hook asks a credential source
for a fresh secret and writes it as the password of that one attempt, so an
expired token is never reused.

Example:
    >>> provider = AzureCredentialProvider(env)
    >>> source = AzureADTokenSource(
    ...     provider.get_token_credential(),
    ...     env.scope(SERVICE_OSS_RDBMS),
    ... )
    >>> hook = create_before_connect_hook(source)
    >>> params = {"host": "db.postgres.database.azure.com", "user": "app"}
    >>> await hook(params)
    >>> params["password"]  # the access token

Security Notes:
    - Tokens are not cached; every attempt performs a fresh request
    - Tokens and credentials are never logged
    - The hook only mutates the per-attempt parameter mapping it receives,
      so concurrent attempts do not share state
"""

import asyncio
import logging
from collections.abc import MutableMapping
from typing import Any, Protocol

from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import AzureError
from botocore.exceptions import BotoCoreError, ClientError

from connauth.errors import TokenAcquisitionError
from connauth.types import BeforeConnectHook, TransientCredentialSource

logger = logging.getLogger(__name__)


class AzureADTokenSource:
    """
    Requests an Azure AD access token scoped to one resource.

    Attributes:
        scope: OAuth scope requested on every call
    """

    def __init__(self, credential: AsyncTokenCredential, scope: str):
        self._credential = credential
        self.scope = scope

    async def get_password(self) -> str:
        """
        Get a fresh access token for the configured scope.

        Returns:
            Access token string

        Raises:
            TokenAcquisitionError: If Azure AD refuses or cannot be reached
        """
        try:
            access_token = await self._credential.get_token(self.scope)
        except AzureError as e:
            logger.error(
                "Failed to acquire Azure AD token for connection",
                extra={"scope": self.scope, "error": str(e)},
            )
            raise TokenAcquisitionError(
                f"Failed to acquire Azure AD token\n"
                f"Scope: {self.scope}\n"
                f"Error: {str(e)}",
                cause=e,
                context={"scope": self.scope},
            ) from e

        logger.debug("Acquired Azure AD token for connection", extra={"scope": self.scope})
        return access_token.token


class RdsTokenSigner(Protocol):
    def rds_auth_token(self, host: str, port: int | str, user: str) -> str: ...


class RdsIamTokenSource:
    """Signs an RDS IAM auth token for one host/port/user."""

    def __init__(self, signer: RdsTokenSigner, host: str, port: int | str, user: str):
        self._signer = signer
        self.host = host
        self.port = port
        self.user = user

    async def get_password(self) -> str:
        """
        Sign a fresh RDS auth token.

        Raises:
            TokenAcquisitionError: If the token cannot be signed
        """
        try:
            return await asyncio.to_thread(
                self._signer.rds_auth_token, self.host, self.port, self.user
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to sign RDS IAM token for connection",
                extra={"host": self.host, "error": str(e)},
            )
            raise TokenAcquisitionError(
                f"Failed to sign RDS IAM auth token for {self.user}@{self.host}",
                cause=e,
                context={"host": self.host},
            ) from e


def create_before_connect_hook(source: TransientCredentialSource) -> BeforeConnectHook:
    """
    Create the pool's before-connect hook for a credential source.

    Args:
        source: Produces the transient password for each attempt

    Returns:
        Async callable taking the per-attempt connection parameters

    Note:
        Failures from the source propagate unchanged and fail the
        connection attempt; retry and backoff are left to the pool.
    """

    async def before_connect(params: MutableMapping[str, Any]) -> None:
        params["password"] = await source.get_password()

    return before_connect


__all__ = [
    "AzureADTokenSource",
    "RdsIamTokenSource",
    "create_before_connect_hook",
]
