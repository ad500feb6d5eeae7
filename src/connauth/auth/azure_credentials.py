"""
Azure credential provider supporting multiple authentication methods.

This module turns resolved AzureEnvironmentSettings into a single async token
credential that the Postgres before-connect hook can ask for a fresh token on
every connection attempt.

Supported Authentication Methods (chain order):
    - Client credentials: tenant ID + client ID + client secret
    - Client certificate: tenant ID + client ID + inline PEM or certificate file
    - Workload identity: tenant ID + client ID + federated token file
    - Managed identity: system-assigned, or user-assigned via client ID
    - Azure CLI: uses the signed-in `az` session (local development)

Methods that are not configured are left out of the chain. Managed identity
and Azure CLI need no configuration and are always included when enabled.

Tokens are never cached here; every get_token call on the returned credential
goes to Azure AD (the azure-identity credentials keep their own short-lived
cache, which honors token expiry).

Example:
    >>> env = AzureEnvironmentSettings.from_metadata({
    ...     "azureTenantId": "...",
    ...     "azureClientId": "...",
    ...     "azureClientSecret": "...",
    ... })
    >>> provider = AzureCredentialProvider(env)
    >>> credential = provider.get_token_credential()
    >>> token = await credential.get_token(env.scope(SERVICE_OSS_RDBMS))
"""

import logging
from pathlib import Path
from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.identity.aio import (
    AzureCliCredential,
    CertificateCredential,
    ChainedTokenCredential,
    ClientSecretCredential,
    ManagedIdentityCredential,
    WorkloadIdentityCredential,
)

from connauth.auth.azure_environment import (
    AUTH_METHOD_CLI,
    AUTH_METHOD_CLIENT_CERTIFICATE,
    AUTH_METHOD_CLIENT_CREDENTIALS,
    AUTH_METHOD_MANAGED_IDENTITY,
    AUTH_METHOD_WORKLOAD_IDENTITY,
    AzureEnvironmentSettings,
)
from connauth.errors import CredentialUnavailableError

logger = logging.getLogger(__name__)


class AzureCredentialProvider:
    """
    Builds and owns the async Azure token credential for one component.

    The credential chain is created lazily on the first call to
    get_token_credential() and reused afterwards. Only the credential object
    is reused; tokens are requested from it per connection attempt.

    Attributes:
        env: Resolved Azure environment settings
    """

    def __init__(self, env: AzureEnvironmentSettings):
        self.env = env
        self._credential: AsyncTokenCredential | None = None

    @property
    def has_client_secret(self) -> bool:
        return all([self.env.tenant_id, self.env.client_id, self.env.client_secret])

    @property
    def has_client_certificate(self) -> bool:
        return all([self.env.tenant_id, self.env.client_id]) and bool(
            self.env.certificate or self.env.certificate_file
        )

    @property
    def has_workload_identity(self) -> bool:
        return all(
            [self.env.tenant_id, self.env.client_id, self.env.federated_token_file]
        )

    @property
    def configured_methods(self) -> list[str]:
        """
        Credential methods that will be part of the chain.

        Returns:
            Method names in chain order; empty if nothing usable is configured
        """
        available = {
            AUTH_METHOD_CLIENT_CREDENTIALS: self.has_client_secret,
            AUTH_METHOD_CLIENT_CERTIFICATE: self.has_client_certificate,
            AUTH_METHOD_WORKLOAD_IDENTITY: self.has_workload_identity,
            AUTH_METHOD_MANAGED_IDENTITY: True,
            AUTH_METHOD_CLI: True,
        }
        return [method for method in self.env.auth_methods if available[method]]

    def get_token_credential(self) -> AsyncTokenCredential:
        """
        Get or create the chained token credential.

        Returns:
            Async credential whose get_token() requests an Azure AD token

        Raises:
            CredentialUnavailableError: If no credential can be built from
                the configuration
        """
        if self._credential is not None:
            return self._credential

        methods = self.configured_methods
        if not methods:
            raise CredentialUnavailableError(
                "No valid Azure credential configuration found. "
                "Configure client credentials, a client certificate, workload "
                "identity, or enable managed identity / Azure CLI",
                context={"auth_methods": list(self.env.auth_methods)},
            )

        credentials = [self._create_credential(method) for method in methods]
        self._credential = ChainedTokenCredential(*credentials)

        logger.info(
            "Created Azure token credential",
            extra={
                "cloud": self.env.cloud.name,
                "auth_methods": methods,
                "tenant_id": self.env.tenant_id or None,
            },
        )
        return self._credential

    def _create_credential(self, method: str) -> AsyncTokenCredential:
        env = self.env
        authority = env.cloud.authority_host
        try:
            if method == AUTH_METHOD_CLIENT_CREDENTIALS:
                return ClientSecretCredential(
                    tenant_id=env.tenant_id,
                    client_id=env.client_id,
                    client_secret=env.client_secret,
                    authority=authority,
                )

            if method == AUTH_METHOD_CLIENT_CERTIFICATE:
                return self._create_certificate_credential(authority)

            if method == AUTH_METHOD_WORKLOAD_IDENTITY:
                return WorkloadIdentityCredential(
                    tenant_id=env.tenant_id,
                    client_id=env.client_id,
                    token_file_path=env.federated_token_file,
                    authority=authority,
                )

            if method == AUTH_METHOD_MANAGED_IDENTITY:
                if env.client_id:
                    return ManagedIdentityCredential(client_id=env.client_id)
                return ManagedIdentityCredential()

            if method == AUTH_METHOD_CLI:
                if env.tenant_id:
                    return AzureCliCredential(tenant_id=env.tenant_id)
                return AzureCliCredential()
        except ValueError as e:
            raise CredentialUnavailableError(
                f"Invalid Azure credential configuration for {method}",
                cause=e,
                context={"auth_method": method},
            ) from e

        raise CredentialUnavailableError(f"Unsupported Azure auth method: {method}")

    def _create_certificate_credential(self, authority: str) -> CertificateCredential:
        env = self.env
        kwargs: dict[str, Any] = {"authority": authority}
        if env.certificate_password:
            kwargs["password"] = env.certificate_password

        if env.certificate:
            logger.debug(
                "Using inline certificate for Service Principal authentication",
                extra={"tenant_id": env.tenant_id, "client_id": env.client_id},
            )
            return CertificateCredential(
                env.tenant_id,
                env.client_id,
                certificate_data=env.certificate.encode("utf-8"),
                **kwargs,
            )

        if not Path(env.certificate_file).exists():
            raise CredentialUnavailableError(
                f"Certificate file not found: {env.certificate_file}"
            )
        logger.debug(
            "Using certificate file for Service Principal authentication",
            extra={"tenant_id": env.tenant_id, "client_id": env.client_id},
        )
        return CertificateCredential(
            env.tenant_id,
            env.client_id,
            certificate_path=env.certificate_file,
            **kwargs,
        )

    async def close(self) -> None:
        """Close the underlying credential transports. Safe to call twice."""
        if self._credential is None:
            return
        credential, self._credential = self._credential, None
        await credential.close()

    def get_diagnostics(self) -> dict:
        """
        Get authentication diagnostics for health checks.

        Returns:
            Dictionary with cloud, configured methods and credential state
        """
        return {
            "cloud": self.env.cloud.name,
            "auth_methods": list(self.env.auth_methods),
            "configured_methods": self.configured_methods,
            "credential_created": self._credential is not None,
            "tenant_id": self.env.tenant_id or None,
        }


__all__ = ["AzureCredentialProvider"]
