"""
AWS environment resolution and IAM option building.

AwsEnvironmentSettings keeps the component metadata for AWS IAM mode after a
light sanity check; build_iam_options() derives the session options from it.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from connauth.errors import ConfigError, ConfigErrorReason, EnvironmentResolutionError
from connauth.metadata import get_metadata_property

logger = logging.getLogger(__name__)


DEFAULT_SESSION_NAME = "DefaultSession"

_REGION_PATTERN = re.compile(r"[a-z0-9]+(-[a-z0-9]+)*")


@dataclass(frozen=True)
class AwsEnvironmentSettings:
    """
    AWS settings resolved from metadata.

    Attributes:
        metadata: The raw metadata, used for IAM option lookups
    """

    metadata: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_metadata(cls, meta: Mapping[str, str]) -> "AwsEnvironmentSettings":
        """
        Validate and capture AWS metadata.

        Raises:
            EnvironmentResolutionError: Malformed region or role ARN
        """
        for key in ("region", "AWSRegion"):
            value, _ = get_metadata_property(meta, key)
            if value and not _REGION_PATTERN.fullmatch(value):
                raise EnvironmentResolutionError(
                    f"metadata property '{key}' is not a valid AWS region: {value!r}"
                )

        role_arn, _ = get_metadata_property(meta, "assumeRoleArn")
        if role_arn and not role_arn.startswith("arn:"):
            raise EnvironmentResolutionError(
                f"metadata property 'assumeRoleArn' is not an ARN: {role_arn!r}"
            )

        return cls(metadata=MappingProxyType(dict(meta)))


@dataclass(frozen=True)
class IamOptions:
    """
    Options for establishing an AWS session.

    Access and secret keys are optional; without them the default boto3
    credential chain (environment, shared config, instance profile) applies.
    """

    region: str
    access_key: str = field(default="", repr=False)
    secret_key: str = field(default="", repr=False)
    session_token: str = field(default="", repr=False)
    assume_role_arn: str = ""
    session_name: str = DEFAULT_SESSION_NAME
    endpoint: str = ""


def build_iam_options(env: AwsEnvironmentSettings) -> IamOptions:
    """
    Derive IAM options from AWS metadata.

    Region comes from ``region``, falling back to ``AWSRegion``. The access
    key starts from ``AWSAccessKey`` and is replaced by ``AccessKey`` when
    ``AWSAccessKey`` is empty or ``AccessKey`` is set; the secret key follows
    the same rule with ``AWSSecretKey``/``SecretKey``.

    Raises:
        ConfigError: MISSING_REGION if neither region key has a value
    """
    md = env.metadata

    aws_region, _ = get_metadata_property(md, "AWSRegion")
    region, _ = get_metadata_property(md, "region")
    if not region:
        region = aws_region
    if not region:
        raise ConfigError(
            ConfigErrorReason.MISSING_REGION,
            "metadata properties 'region' or 'AWSRegion' is missing",
        )

    aws_access_key, _ = get_metadata_property(md, "AWSAccessKey")
    access_key, _ = get_metadata_property(md, "AccessKey")
    if not aws_access_key or access_key:
        aws_access_key = access_key

    aws_secret_key, _ = get_metadata_property(md, "AWSSecretKey")
    secret_key, _ = get_metadata_property(md, "SecretKey")
    if not aws_secret_key or secret_key:
        aws_secret_key = secret_key

    session_token, _ = get_metadata_property(md, "sessionToken")
    assume_role_arn, _ = get_metadata_property(md, "assumeRoleArn")
    session_name, _ = get_metadata_property(md, "sessionName")
    if not session_name:
        session_name = DEFAULT_SESSION_NAME

    logger.debug(
        "Built AWS IAM options",
        extra={
            "region": region,
            "static_keys": bool(aws_access_key and aws_secret_key),
            "assume_role": bool(assume_role_arn),
        },
    )
    return IamOptions(
        region=region,
        access_key=aws_access_key,
        secret_key=aws_secret_key,
        session_token=session_token,
        assume_role_arn=assume_role_arn,
        session_name=session_name,
    )


__all__ = [
    "AwsEnvironmentSettings",
    "DEFAULT_SESSION_NAME",
    "IamOptions",
    "build_iam_options",
]
