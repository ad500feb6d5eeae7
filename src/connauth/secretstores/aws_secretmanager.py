"""
AWS Secrets Manager secret store.

Reads single secrets and whole-store snapshots through a boto3 client owned
by an AwsIamProvider.

Metadata keys (case-insensitive):
    region: AWS region (falls back to the default chain when empty)
    accessKey / secretKey / sessionToken: Static credentials
    endpoint: Custom Secrets Manager endpoint URL

Request metadata for get_secret:
    version_id: Specific secret version
    version_stage: Staging label, e.g. AWSCURRENT

Example:
    >>> store = AwsSecretManagerStore()
    >>> store.init({"region": "us-east-1"})
    >>> store.get_secret("db-password")
    {'db-password': '...'}
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, Field

from connauth.auth.aws_environment import IamOptions
from connauth.auth.aws_provider import AwsIamProvider
from connauth.errors import SecretFetchError, SecretNotFoundError, SecretStoreError
from connauth.metadata import get_metadata_property

logger = logging.getLogger(__name__)

VERSION_ID = "version_id"
VERSION_STAGE = "version_stage"

RESOURCE_NOT_FOUND = "ResourceNotFoundException"


class SecretManagerMetadata(BaseModel):
    """Component metadata for the Secrets Manager store."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    region: str = Field(
        default="",
        description="AWS region of the secrets",
        json_schema_extra={"mdignore": True},
    )
    access_key: str = Field(
        default="",
        alias="accessKey",
        description="AWS access key ID",
        repr=False,
        json_schema_extra={"mdignore": True},
    )
    secret_key: str = Field(
        default="",
        alias="secretKey",
        description="AWS secret access key",
        repr=False,
        json_schema_extra={"mdignore": True},
    )
    session_token: str = Field(
        default="",
        alias="sessionToken",
        description="AWS session token for temporary credentials",
        repr=False,
        json_schema_extra={"mdignore": True},
    )
    endpoint: str = Field(
        default="",
        description="Custom endpoint URL for Secrets Manager",
    )

    @classmethod
    def from_properties(cls, properties: Mapping[str, str]) -> "SecretManagerMetadata":
        values = {}
        for name, info in cls.model_fields.items():
            key = info.alias or name
            value, found = get_metadata_property(properties, key)
            if found:
                values[key] = value
        return cls.model_validate(values)

    def to_iam_options(self) -> IamOptions:
        return IamOptions(
            region=self.region,
            access_key=self.access_key,
            secret_key=self.secret_key,
            session_token=self.session_token,
            endpoint=self.endpoint,
        )


class AwsSecretManagerStore:
    """
    Secret store backed by AWS Secrets Manager.

    Not usable until init() succeeds; get_secret and bulk_get_secret raise
    SecretStoreError before that.
    """

    def __init__(
        self,
        provider_factory: Callable[[IamOptions], AwsIamProvider] = AwsIamProvider,
    ):
        self._provider_factory = provider_factory
        self._provider: AwsIamProvider | None = None
        self.metadata: SecretManagerMetadata | None = None

    def init(self, metadata: Mapping[str, str]) -> None:
        """
        Decode metadata and establish the AWS session.

        Raises:
            SecretStoreError: If the metadata cannot be decoded
            AwsAuthError: If the AWS session cannot be established
        """
        try:
            self.metadata = SecretManagerMetadata.from_properties(metadata)
        except ValueError as e:
            raise SecretStoreError(f"invalid secret store metadata: {e}", cause=e) from e

        self._provider = self._provider_factory(self.metadata.to_iam_options())
        logger.info(
            "Initialized AWS Secrets Manager store",
            extra={"region": self.metadata.region, "endpoint": self.metadata.endpoint or None},
        )

    def _client(self) -> Any:
        if self._provider is None:
            raise SecretStoreError("secret store is not initialized")
        return self._provider.secrets_manager()

    def get_secret(
        self,
        name: str,
        metadata: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """
        Get one secret, optionally pinned to a version or stage.

        Returns:
            {name: value}, or an empty dict for binary-only secrets

        Raises:
            SecretNotFoundError: If the secret or version does not exist
            SecretStoreError: On any other failure
        """
        client = self._client()
        metadata = metadata or {}

        request: dict[str, Any] = {"SecretId": name}
        if VERSION_ID in metadata:
            request["VersionId"] = metadata[VERSION_ID]
        if VERSION_STAGE in metadata:
            request["VersionStage"] = metadata[VERSION_STAGE]

        try:
            output = client.get_secret_value(**request)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == RESOURCE_NOT_FOUND:
                raise SecretNotFoundError(name, cause=e) from e
            raise SecretStoreError(f"couldn't get secret: {e}", cause=e) from e
        except BotoCoreError as e:
            raise SecretStoreError(f"couldn't get secret: {e}", cause=e) from e

        data: dict[str, str] = {}
        if output.get("Name") is not None and output.get("SecretString") is not None:
            data[output["Name"]] = output["SecretString"]
        return data

    def bulk_get_secret(
        self,
        metadata: Mapping[str, str] | None = None,
    ) -> dict[str, dict[str, str]]:
        """
        Read every secret in the store.

        Pages through list_secrets until no NextToken is returned, then reads
        each entry's current value. Either every entry is returned or the
        call fails.

        Args:
            metadata: Reserved. Accepted for secret store interface parity
                and ignored; bulk reads always return current values.

        Returns:
            {name: {name: value}} for every entry with a string value

        Raises:
            SecretFetchError: If reading one entry fails
            SecretStoreError: If listing fails
        """
        client = self._client()
        data: dict[str, dict[str, str]] = {}
        next_token: str | None = None
        page = 0

        while True:
            request: dict[str, Any] = {}
            if next_token:
                request["NextToken"] = next_token
            try:
                output = client.list_secrets(**request)
            except (BotoCoreError, ClientError) as e:
                raise SecretStoreError(f"couldn't list secrets: {e}", cause=e) from e
            page += 1

            for entry in output.get("SecretList", []):
                entry_name = entry.get("Name")
                try:
                    secret = client.get_secret_value(SecretId=entry_name)
                except (BotoCoreError, ClientError) as e:
                    logger.warning(
                        "Failed to read secret during bulk get",
                        extra={"secret_name": entry_name, "page": page},
                    )
                    raise SecretFetchError(entry_name, cause=e) from e

                if entry_name is not None and secret.get("SecretString") is not None:
                    data[entry_name] = {entry_name: secret["SecretString"]}

            next_token = output.get("NextToken")
            if not next_token:
                break

        logger.debug("Bulk read secrets", extra={"secret_count": len(data), "page": page})
        return data

    def features(self) -> list[str]:
        """No optional secret store features are supported."""
        return []

    def get_component_metadata(self) -> dict[str, dict[str, str]]:
        """Documented metadata fields keyed by their metadata name."""
        info = {}
        for name, field in SecretManagerMetadata.model_fields.items():
            extra = field.json_schema_extra or {}
            if isinstance(extra, dict) and extra.get("mdignore"):
                continue
            info[field.alias or name] = {
                "type": "string",
                "description": field.description or "",
            }
        return info

    def close(self) -> None:
        """Release the AWS clients. Safe to call more than once."""
        if self._provider is not None:
            provider, self._provider = self._provider, None
            provider.close()


__all__ = [
    "AwsSecretManagerStore",
    "SecretManagerMetadata",
    "VERSION_ID",
    "VERSION_STAGE",
]
