"""
Azure environment resolution.

Resolves the Azure cloud (authority host and service audiences) and the
credential settings from component metadata. No network calls happen here;
the settings are a plain value passed to AzureCredentialProvider.

Metadata:
    azureEnvironment: AzurePublicCloud (default), AzureChinaCloud or
        AzureUSGovernmentCloud (case-insensitive)
    azureAuthMethods: Comma-separated subset of clientcredentials,
        clientcertificate, workloadidentity, managedidentity,
        commandlineinterface (default: all)
    azureTenantId / azureClientId / azureClientSecret (spn* and short aliases)
    azureCertificate / azureCertificateFile / azureCertificatePassword
    azureFederatedTokenFile (falls back to AZURE_FEDERATED_TOKEN_FILE)
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from azure.identity import AzureAuthorityHosts

from connauth.errors import EnvironmentResolutionError
from connauth.metadata import get_metadata_property

logger = logging.getLogger(__name__)


# Service names for audience lookup
SERVICE_OSS_RDBMS = "oss_rdbms"
SERVICE_AZURE_STORAGE = "storage"
SERVICE_KEY_VAULT = "key_vault"

# Supported credential methods, in chain order
AUTH_METHOD_CLIENT_CREDENTIALS = "clientcredentials"
AUTH_METHOD_CLIENT_CERTIFICATE = "clientcertificate"
AUTH_METHOD_WORKLOAD_IDENTITY = "workloadidentity"
AUTH_METHOD_MANAGED_IDENTITY = "managedidentity"
AUTH_METHOD_CLI = "commandlineinterface"
DEFAULT_AUTH_METHODS = (
    AUTH_METHOD_CLIENT_CREDENTIALS,
    AUTH_METHOD_CLIENT_CERTIFICATE,
    AUTH_METHOD_WORKLOAD_IDENTITY,
    AUTH_METHOD_MANAGED_IDENTITY,
    AUTH_METHOD_CLI,
)


@dataclass(frozen=True)
class AzureCloud:
    """Authority host and per-service token audiences of one Azure cloud."""

    name: str
    authority_host: str
    audiences: Mapping[str, str]


AZURE_PUBLIC_CLOUD = AzureCloud(
    name="AzurePublicCloud",
    authority_host=AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    audiences=MappingProxyType(
        {
            SERVICE_OSS_RDBMS: "https://ossrdbms-aad.database.windows.net",
            SERVICE_AZURE_STORAGE: "https://storage.azure.com",
            SERVICE_KEY_VAULT: "https://vault.azure.net",
        }
    ),
)

AZURE_CHINA_CLOUD = AzureCloud(
    name="AzureChinaCloud",
    authority_host=AzureAuthorityHosts.AZURE_CHINA,
    audiences=MappingProxyType(
        {
            SERVICE_OSS_RDBMS: "https://ossrdbms-aad.database.chinacloudapi.cn",
            SERVICE_AZURE_STORAGE: "https://storage.azure.com",
            SERVICE_KEY_VAULT: "https://vault.azure.cn",
        }
    ),
)

AZURE_US_GOVERNMENT_CLOUD = AzureCloud(
    name="AzureUSGovernmentCloud",
    authority_host=AzureAuthorityHosts.AZURE_GOVERNMENT,
    audiences=MappingProxyType(
        {
            SERVICE_OSS_RDBMS: "https://ossrdbms-aad.database.usgovcloudapi.net",
            SERVICE_AZURE_STORAGE: "https://storage.azure.com",
            SERVICE_KEY_VAULT: "https://vault.usgovcloudapi.net",
        }
    ),
)

_CLOUDS = {
    cloud.name.upper(): cloud
    for cloud in (AZURE_PUBLIC_CLOUD, AZURE_CHINA_CLOUD, AZURE_US_GOVERNMENT_CLOUD)
}


@dataclass(frozen=True)
class AzureEnvironmentSettings:
    """
    Azure cloud and credential settings resolved from metadata.

    Attributes:
        cloud: Selected Azure cloud
        auth_methods: Enabled credential methods, in chain order
        tenant_id: Azure AD tenant ID
        client_id: Application (client) ID, also used for user-assigned MI
        client_secret: Client secret for service principal auth
        certificate: Inline PEM certificate for service principal auth
        certificate_file: Path to a PEM/PKCS12 certificate
        certificate_password: Password protecting the certificate
        federated_token_file: Token file for workload identity
        metadata: The raw metadata the settings were resolved from
    """

    cloud: AzureCloud = AZURE_PUBLIC_CLOUD
    auth_methods: tuple[str, ...] = DEFAULT_AUTH_METHODS
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    certificate: str = field(default="", repr=False)
    certificate_file: str = ""
    certificate_password: str = field(default="", repr=False)
    federated_token_file: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_metadata(cls, meta: Mapping[str, str]) -> "AzureEnvironmentSettings":
        """
        Resolve settings from component metadata.

        Raises:
            EnvironmentResolutionError: Unknown cloud name or auth method
        """
        cloud = _resolve_cloud(meta)
        auth_methods = _resolve_auth_methods(meta)

        tenant_id, _ = get_metadata_property(meta, "azureTenantId", "spnTenantId", "tenantId")
        client_id, _ = get_metadata_property(meta, "azureClientId", "spnClientId", "clientId")
        client_secret, _ = get_metadata_property(
            meta, "azureClientSecret", "spnClientSecret", "clientSecret"
        )
        certificate, _ = get_metadata_property(meta, "azureCertificate", "spnCertificate")
        certificate_file, _ = get_metadata_property(
            meta, "azureCertificateFile", "spnCertificateFile"
        )
        certificate_password, _ = get_metadata_property(
            meta, "azureCertificatePassword", "spnCertificatePassword"
        )
        federated_token_file, _ = get_metadata_property(meta, "azureFederatedTokenFile")
        if not federated_token_file:
            federated_token_file = os.getenv("AZURE_FEDERATED_TOKEN_FILE", "")

        settings = cls(
            cloud=cloud,
            auth_methods=auth_methods,
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
            certificate=certificate,
            certificate_file=certificate_file,
            certificate_password=certificate_password,
            federated_token_file=federated_token_file,
            metadata=MappingProxyType(dict(meta)),
        )
        logger.debug(
            "Resolved Azure environment",
            extra={"cloud": cloud.name, "auth_methods": list(auth_methods)},
        )
        return settings

    def audience(self, service: str) -> str:
        """
        Token audience for a service in the selected cloud.

        Raises:
            EnvironmentResolutionError: Service not known for this cloud
        """
        try:
            return self.cloud.audiences[service]
        except KeyError:
            raise EnvironmentResolutionError(
                f"no audience for service '{service}' in {self.cloud.name}"
            ) from None

    def scope(self, service: str) -> str:
        """OAuth scope (audience + /.default) for a service."""
        return self.audience(service).rstrip("/") + "/.default"


def _resolve_cloud(meta: Mapping[str, str]) -> AzureCloud:
    name, _ = get_metadata_property(meta, "azureEnvironment")
    if not name:
        return AZURE_PUBLIC_CLOUD
    cloud = _CLOUDS.get(name.strip().upper())
    if cloud is None:
        raise EnvironmentResolutionError(
            f"invalid value for azureEnvironment: {name}",
            context={"allowed": [c.name for c in _CLOUDS.values()]},
        )
    return cloud


def _resolve_auth_methods(meta: Mapping[str, str]) -> tuple[str, ...]:
    raw, _ = get_metadata_property(meta, "azureAuthMethods")
    requested = {part.strip().lower() for part in raw.split(",") if part.strip()}
    if not requested:
        return DEFAULT_AUTH_METHODS

    unknown = requested.difference(DEFAULT_AUTH_METHODS)
    if unknown:
        raise EnvironmentResolutionError(
            f"invalid value for azureAuthMethods: {', '.join(sorted(unknown))}",
            context={"allowed": list(DEFAULT_AUTH_METHODS)},
        )
    return tuple(method for method in DEFAULT_AUTH_METHODS if method in requested)


__all__ = [
    "AUTH_METHOD_CLI",
    "AUTH_METHOD_CLIENT_CERTIFICATE",
    "AUTH_METHOD_CLIENT_CREDENTIALS",
    "AUTH_METHOD_MANAGED_IDENTITY",
    "AUTH_METHOD_WORKLOAD_IDENTITY",
    "AZURE_CHINA_CLOUD",
    "AZURE_PUBLIC_CLOUD",
    "AZURE_US_GOVERNMENT_CLOUD",
    "AzureCloud",
    "AzureEnvironmentSettings",
    "DEFAULT_AUTH_METHODS",
    "SERVICE_AZURE_STORAGE",
    "SERVICE_KEY_VAULT",
    "SERVICE_OSS_RDBMS",
]
