"""
Authentication module.

Provides credential resolution for Azure AD and AWS IAM.

Components:
    - Azure environment settings (cloud, audiences, credential metadata)
    - Azure credential provider (client secret/certificate, workload and
      managed identity, Azure CLI)
    - AWS environment settings and IAM options
    - AWS session provider (static keys, default chain, assumed role)
    - Before-connect hooks producing a fresh password per connection
"""

from .aws_environment import (
    DEFAULT_SESSION_NAME,
    AwsEnvironmentSettings,
    IamOptions,
    build_iam_options,
)
from .aws_provider import AwsIamProvider
from .azure_credentials import AzureCredentialProvider
from .azure_environment import (
    SERVICE_AZURE_STORAGE,
    SERVICE_KEY_VAULT,
    SERVICE_OSS_RDBMS,
    AzureCloud,
    AzureEnvironmentSettings,
)
from .token_hooks import (
    AzureADTokenSource,
    RdsIamTokenSource,
    create_before_connect_hook,
)

__all__ = [
    # Azure
    "AzureCloud",
    "AzureEnvironmentSettings",
    "AzureCredentialProvider",
    "SERVICE_OSS_RDBMS",
    "SERVICE_AZURE_STORAGE",
    "SERVICE_KEY_VAULT",
    # AWS
    "AwsEnvironmentSettings",
    "AwsIamProvider",
    "IamOptions",
    "build_iam_options",
    "DEFAULT_SESSION_NAME",
    # Hooks
    "AzureADTokenSource",
    "RdsIamTokenSource",
    "create_before_connect_hook",
]
