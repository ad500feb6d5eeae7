"""Tests for PostgresAuthMetadata parsing and auth mode resolution."""

from datetime import timedelta

import pytest

from connauth.errors import ConfigError, ConfigErrorReason, EnvironmentResolutionError
from connauth.postgres.metadata import (
    AuthCapabilities,
    PostgresAuthMetadata,
    resolve_auth_mode,
)
from connauth.types import AuthMode

CONN = "host=db.example.com user=app dbname=orders"

BOTH = AuthCapabilities(azure_ad_enabled=True, aws_iam_enabled=True)


@pytest.fixture(autouse=True)
def _no_federated_token_env(clean_azure_env):
    yield


# ---------------------------------------------------------------------------
# resolve_auth_mode
# ---------------------------------------------------------------------------


class TestResolveAuthMode:

    @pytest.mark.parametrize(
        "use_azure,use_iam,azure_enabled,iam_enabled,expected",
        [
            (False, False, True, True, AuthMode.NONE),
            (True, False, True, True, AuthMode.AZURE_AD),
            (False, True, True, True, AuthMode.AWS_IAM),
            (True, True, True, True, AuthMode.AZURE_AD),
            (True, False, False, True, AuthMode.NONE),
            (False, True, True, False, AuthMode.NONE),
            (True, True, False, True, AuthMode.AWS_IAM),
            (True, True, False, False, AuthMode.NONE),
        ],
    )
    def test_mode_table(self, use_azure, use_iam, azure_enabled, iam_enabled, expected):
        assert resolve_auth_mode(use_azure, use_iam, azure_enabled, iam_enabled) is expected


# ---------------------------------------------------------------------------
# Connection string
# ---------------------------------------------------------------------------


class TestConnectionString:

    @pytest.mark.parametrize(
        "meta",
        [
            {},
            {"connectionString": ""},
            {"useAzureAD": "true"},
            {"useAWSIAM": "true", "region": "us-east-1"},
            {"useAzureAD": "true", "useAWSIAM": "true", "maxConns": "5"},
        ],
    )
    def test_missing_connection_string_always_fails(self, meta):
        with pytest.raises(ConfigError) as exc_info:
            PostgresAuthMetadata.parse(meta, BOTH)
        assert exc_info.value.reason is ConfigErrorReason.MISSING_CONNECTION_STRING

    def test_missing_connection_string_checked_before_other_values(self):
        with pytest.raises(ConfigError) as exc_info:
            PostgresAuthMetadata.parse({"maxConns": "not-a-number"})
        assert exc_info.value.reason is ConfigErrorReason.MISSING_CONNECTION_STRING

    def test_url_alias(self):
        meta = PostgresAuthMetadata.parse({"url": CONN})
        assert meta.connection_string == CONN

    def test_case_insensitive_keys(self):
        meta = PostgresAuthMetadata.parse({"CONNECTIONSTRING": CONN, "MaxConns": "7"})
        assert meta.connection_string == CONN
        assert meta.max_conns == 7

    def test_connection_string_not_in_repr(self):
        meta = PostgresAuthMetadata.parse({"connectionString": "host=db password=hunter2"})
        assert "hunter2" not in repr(meta)


# ---------------------------------------------------------------------------
# Decoded values
# ---------------------------------------------------------------------------


class TestDecodedValues:

    def test_defaults(self):
        meta = PostgresAuthMetadata.parse({"connectionString": CONN})
        assert meta.connection_max_idle_time == timedelta(0)
        assert meta.max_conns == 0
        assert meta.query_exec_mode == ""
        assert meta.auth_mode is AuthMode.NONE

    def test_idle_time_duration(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "connectionMaxIdleTime": "5m"}
        )
        assert meta.connection_max_idle_time == timedelta(minutes=5)

    def test_idle_time_seconds(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "connectionMaxIdleTime": "90"}
        )
        assert meta.connection_max_idle_time == timedelta(seconds=90)

    @pytest.mark.parametrize("value", ["soon", "-5m"])
    def test_invalid_idle_time(self, value):
        with pytest.raises(ConfigError) as exc_info:
            PostgresAuthMetadata.parse({"connectionString": CONN, "connectionMaxIdleTime": value})
        assert exc_info.value.reason is ConfigErrorReason.INVALID_METADATA

    def test_invalid_max_conns(self):
        with pytest.raises(ConfigError) as exc_info:
            PostgresAuthMetadata.parse({"connectionString": CONN, "maxConns": "many"})
        assert exc_info.value.reason is ConfigErrorReason.INVALID_METADATA

    def test_query_exec_mode_kept_verbatim(self):
        meta = PostgresAuthMetadata.parse({"connectionString": CONN, "queryExecMode": "bogus"})
        assert meta.query_exec_mode == "bogus"


# ---------------------------------------------------------------------------
# Mode resolution
# ---------------------------------------------------------------------------


class TestModeResolution:

    def test_azure_ad_populates_azure_env(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAzureAD": "true", "azureClientId": "cid"},
            AuthCapabilities(azure_ad_enabled=True),
        )
        assert meta.auth_mode is AuthMode.AZURE_AD
        assert meta.azure_env is not None
        assert meta.azure_env.client_id == "cid"
        assert meta.aws_env is None

    def test_disabled_capability_downgrades_silently(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAzureAD": "yes"},
            AuthCapabilities(azure_ad_enabled=False),
        )
        assert meta.auth_mode is AuthMode.NONE
        assert meta.use_azure_ad is False
        assert meta.azure_env is None
        assert meta.aws_env is None

    def test_disabled_iam_capability_downgrades_silently(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAWSIAM": "true", "region": "us-east-1"},
            AuthCapabilities(azure_ad_enabled=True),
        )
        assert meta.auth_mode is AuthMode.NONE
        assert meta.use_aws_iam is False
        assert meta.aws_env is None

    def test_azure_wins_when_both_requested(self):
        meta = PostgresAuthMetadata.parse(
            {
                "connectionString": CONN,
                "useAzureAD": "true",
                "useAWSIAM": "true",
                "region": "us-east-1",
            },
            BOTH,
        )
        assert meta.auth_mode is AuthMode.AZURE_AD
        assert meta.use_aws_iam is False
        assert meta.aws_env is None
        assert meta.azure_env is not None

    def test_aws_iam_populates_aws_env(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAWSIAM": "1", "region": "us-east-1"},
            AuthCapabilities(aws_iam_enabled=True),
        )
        assert meta.auth_mode is AuthMode.AWS_IAM
        assert meta.aws_env is not None
        assert meta.azure_env is None

    def test_downgraded_mode_skips_environment_validation(self):
        # Azure settings are only resolved when Azure AD is the active mode
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAzureAD": "true", "azureEnvironment": "Nowhere"},
            AuthCapabilities(),
        )
        assert meta.auth_mode is AuthMode.NONE

    def test_unknown_azure_cloud_fails_in_azure_mode(self):
        with pytest.raises(EnvironmentResolutionError):
            PostgresAuthMetadata.parse(
                {"connectionString": CONN, "useAzureAD": "true", "azureEnvironment": "Nowhere"},
                AuthCapabilities(azure_ad_enabled=True),
            )

    def test_malformed_region_fails_in_iam_mode(self):
        with pytest.raises(EnvironmentResolutionError):
            PostgresAuthMetadata.parse(
                {"connectionString": CONN, "useAWSIAM": "true", "region": "Not A Region"},
                AuthCapabilities(aws_iam_enabled=True),
            )


# ---------------------------------------------------------------------------
# IAM options
# ---------------------------------------------------------------------------


class TestIamOptions:

    def _meta(self, extra):
        return PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAWSIAM": "true", **extra},
            AuthCapabilities(aws_iam_enabled=True),
        )

    def test_aws_region_equivalent_to_region(self):
        from_region = self._meta({"region": "us-east-1"}).build_iam_options()
        from_aws_region = self._meta({"AWSRegion": "us-east-1"}).build_iam_options()
        assert from_region == from_aws_region

    def test_missing_region(self):
        with pytest.raises(ConfigError) as exc_info:
            self._meta({}).build_iam_options()
        assert exc_info.value.reason is ConfigErrorReason.MISSING_REGION


# ---------------------------------------------------------------------------
# reset
# ---------------------------------------------------------------------------


class TestReset:

    def test_reset_clears_everything(self):
        meta = PostgresAuthMetadata.parse(
            {
                "connectionString": CONN,
                "useAzureAD": "true",
                "maxConns": "9",
                "connectionMaxIdleTime": "1m",
                "queryExecMode": "exec",
            },
            BOTH,
        )
        meta.reset()
        assert meta == PostgresAuthMetadata()

    def test_reset_then_parse_matches_fresh_instance(self):
        first = {
            "connectionString": "host=old user=old",
            "useAzureAD": "true",
            "maxConns": "9",
            "connectionMaxIdleTime": "1m",
            "queryExecMode": "exec",
        }
        second = {"connectionString": CONN, "useAWSIAM": "true", "region": "eu-west-1"}

        reused = PostgresAuthMetadata.parse(first, BOTH)
        reused.reset()
        reused.init_with_metadata(second, BOTH)

        fresh = PostgresAuthMetadata.parse(second, BOTH)
        assert reused == fresh
        assert reused.azure_env is None
        assert reused.auth_mode is AuthMode.AWS_IAM

    def test_failed_init_after_reset_keeps_cleared_state(self):
        meta = PostgresAuthMetadata.parse({"connectionString": CONN}, BOTH)
        meta.reset()

        with pytest.raises(EnvironmentResolutionError):
            meta.init_with_metadata(
                {"connectionString": "host=new", "useAzureAD": "true", "azureEnvironment": "Mars"},
                BOTH,
            )

        assert meta == PostgresAuthMetadata()
        assert meta.auth_mode is AuthMode.NONE

    def test_failed_init_keeps_previous_values(self):
        meta = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAWSIAM": "true", "region": "eu-west-1", "maxConns": "7"},
            BOTH,
        )
        before = PostgresAuthMetadata.parse(
            {"connectionString": CONN, "useAWSIAM": "true", "region": "eu-west-1", "maxConns": "7"},
            BOTH,
        )

        with pytest.raises(ConfigError):
            meta.init_with_metadata(
                {"connectionString": "host=new", "useAzureAD": "true", "maxConns": "lots"},
                BOTH,
            )

        assert meta == before
        assert meta.auth_mode is AuthMode.AWS_IAM
