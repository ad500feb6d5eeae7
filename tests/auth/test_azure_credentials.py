"""Tests for AzureCredentialProvider - credential chain construction."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from connauth.auth.azure_credentials import AzureCredentialProvider
from connauth.auth.azure_environment import (
    AUTH_METHOD_CLIENT_CERTIFICATE,
    AUTH_METHOD_CLIENT_CREDENTIALS,
    AUTH_METHOD_MANAGED_IDENTITY,
    AUTH_METHOD_WORKLOAD_IDENTITY,
    AzureEnvironmentSettings,
)
from connauth.errors import ConfigErrorReason, CredentialUnavailableError

MODULE = "connauth.auth.azure_credentials"


@pytest.fixture
def mock_identity():
    """Patch every azure.identity.aio credential class used by the provider."""
    with (
        patch(f"{MODULE}.ClientSecretCredential") as client_secret,
        patch(f"{MODULE}.CertificateCredential") as certificate,
        patch(f"{MODULE}.WorkloadIdentityCredential") as workload,
        patch(f"{MODULE}.ManagedIdentityCredential") as managed,
        patch(f"{MODULE}.AzureCliCredential") as cli,
        patch(f"{MODULE}.ChainedTokenCredential") as chained,
    ):
        chained.return_value.close = AsyncMock()
        yield {
            "client_secret": client_secret,
            "certificate": certificate,
            "workload": workload,
            "managed": managed,
            "cli": cli,
            "chained": chained,
        }


def _env(**kwargs):
    return AzureEnvironmentSettings(**kwargs)


# ---------------------------------------------------------------------------
# configured_methods
# ---------------------------------------------------------------------------


class TestConfiguredMethods:

    def test_only_mi_and_cli_without_configuration(self):
        provider = AzureCredentialProvider(_env())
        assert provider.configured_methods == ["managedidentity", "commandlineinterface"]

    def test_client_secret_requires_all_three_fields(self):
        assert not AzureCredentialProvider(_env(tenant_id="t", client_id="c")).has_client_secret
        assert AzureCredentialProvider(
            _env(tenant_id="t", client_id="c", client_secret="s")
        ).has_client_secret

    def test_certificate_from_file_or_inline(self):
        assert AzureCredentialProvider(
            _env(tenant_id="t", client_id="c", certificate_file="/x.pem")
        ).has_client_certificate
        assert AzureCredentialProvider(
            _env(tenant_id="t", client_id="c", certificate="-----BEGIN")
        ).has_client_certificate

    def test_full_chain_order(self):
        provider = AzureCredentialProvider(
            _env(
                tenant_id="t",
                client_id="c",
                client_secret="s",
                certificate="pem",
                federated_token_file="/token",
            )
        )
        assert provider.configured_methods == [
            "clientcredentials",
            "clientcertificate",
            "workloadidentity",
            "managedidentity",
            "commandlineinterface",
        ]

    def test_restricted_methods_without_configuration_is_empty(self):
        provider = AzureCredentialProvider(_env(auth_methods=(AUTH_METHOD_CLIENT_CREDENTIALS,)))
        assert provider.configured_methods == []


# ---------------------------------------------------------------------------
# get_token_credential
# ---------------------------------------------------------------------------


class TestGetTokenCredential:

    def test_builds_chain_in_order(self, mock_identity):
        provider = AzureCredentialProvider(
            _env(tenant_id="t", client_id="c", client_secret="s")
        )
        credential = provider.get_token_credential()

        assert credential is mock_identity["chained"].return_value
        args = mock_identity["chained"].call_args.args
        assert args == (
            mock_identity["client_secret"].return_value,
            mock_identity["managed"].return_value,
            mock_identity["cli"].return_value,
        )
        mock_identity["client_secret"].assert_called_once_with(
            tenant_id="t",
            client_id="c",
            client_secret="s",
            authority=provider.env.cloud.authority_host,
        )

    def test_user_assigned_managed_identity(self, mock_identity):
        provider = AzureCredentialProvider(
            _env(client_id="cid", auth_methods=(AUTH_METHOD_MANAGED_IDENTITY,))
        )
        provider.get_token_credential()
        mock_identity["managed"].assert_called_once_with(client_id="cid")

    def test_workload_identity_uses_token_file(self, mock_identity):
        provider = AzureCredentialProvider(
            _env(
                tenant_id="t",
                client_id="c",
                federated_token_file="/var/run/token",
                auth_methods=(AUTH_METHOD_WORKLOAD_IDENTITY,),
            )
        )
        provider.get_token_credential()
        assert mock_identity["workload"].call_args.kwargs["token_file_path"] == "/var/run/token"

    def test_inline_certificate(self, mock_identity):
        provider = AzureCredentialProvider(
            _env(
                tenant_id="t",
                client_id="c",
                certificate="PEM DATA",
                certificate_password="pw",
                auth_methods=(AUTH_METHOD_CLIENT_CERTIFICATE,),
            )
        )
        provider.get_token_credential()
        call = mock_identity["certificate"].call_args
        assert call.args == ("t", "c")
        assert call.kwargs["certificate_data"] == b"PEM DATA"
        assert call.kwargs["password"] == "pw"

    def test_missing_certificate_file_raises(self, mock_identity, tmp_path):
        provider = AzureCredentialProvider(
            _env(
                tenant_id="t",
                client_id="c",
                certificate_file=str(tmp_path / "missing.pem"),
                auth_methods=(AUTH_METHOD_CLIENT_CERTIFICATE,),
            )
        )
        with pytest.raises(CredentialUnavailableError, match="Certificate file not found"):
            provider.get_token_credential()

    def test_certificate_file_path(self, mock_identity, tmp_path):
        cert = tmp_path / "app.pem"
        cert.write_text("pem")
        provider = AzureCredentialProvider(
            _env(
                tenant_id="t",
                client_id="c",
                certificate_file=str(cert),
                auth_methods=(AUTH_METHOD_CLIENT_CERTIFICATE,),
            )
        )
        provider.get_token_credential()
        assert mock_identity["certificate"].call_args.kwargs["certificate_path"] == str(cert)

    def test_empty_chain_raises(self, mock_identity):
        provider = AzureCredentialProvider(_env(auth_methods=(AUTH_METHOD_CLIENT_CREDENTIALS,)))
        with pytest.raises(CredentialUnavailableError) as exc_info:
            provider.get_token_credential()
        assert exc_info.value.reason is ConfigErrorReason.CREDENTIAL_UNAVAILABLE
        mock_identity["chained"].assert_not_called()

    def test_sdk_value_error_wrapped(self, mock_identity):
        mock_identity["client_secret"].side_effect = ValueError("tenant_id should be an Azure tenant")
        provider = AzureCredentialProvider(
            _env(tenant_id="bad tenant", client_id="c", client_secret="s")
        )
        with pytest.raises(CredentialUnavailableError) as exc_info:
            provider.get_token_credential()
        assert isinstance(exc_info.value.cause, ValueError)

    def test_credential_is_cached(self, mock_identity):
        provider = AzureCredentialProvider(_env())
        first = provider.get_token_credential()
        second = provider.get_token_credential()
        assert first is second
        mock_identity["chained"].assert_called_once()


# ---------------------------------------------------------------------------
# close / diagnostics
# ---------------------------------------------------------------------------


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, mock_identity):
        provider = AzureCredentialProvider(_env())
        credential = provider.get_token_credential()

        await provider.close()
        await provider.close()

        credential.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_credential(self):
        provider = AzureCredentialProvider(_env())
        await provider.close()

    def test_diagnostics(self, mock_identity):
        provider = AzureCredentialProvider(_env(tenant_id="t"))
        diagnostics = provider.get_diagnostics()
        assert diagnostics["cloud"] == "AzurePublicCloud"
        assert diagnostics["credential_created"] is False
        assert diagnostics["tenant_id"] == "t"

        provider.get_token_credential()
        assert provider.get_diagnostics()["credential_created"] is True

    def test_diagnostics_never_include_secret(self):
        provider = AzureCredentialProvider(
            _env(tenant_id="t", client_id="c", client_secret="hunter2")
        )
        assert "hunter2" not in str(provider.get_diagnostics())
