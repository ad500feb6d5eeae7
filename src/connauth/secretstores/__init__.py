"""Secret store implementations."""

from connauth.secretstores.aws_secretmanager import (
    VERSION_ID,
    VERSION_STAGE,
    AwsSecretManagerStore,
    SecretManagerMetadata,
)

__all__ = [
    "AwsSecretManagerStore",
    "SecretManagerMetadata",
    "VERSION_ID",
    "VERSION_STAGE",
]
