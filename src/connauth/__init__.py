"""
connauth: credential resolution for database and secret store components.

Resolves how a component authenticates (connection-string credentials,
Azure AD or AWS IAM), builds a connection pool configuration whose
credentials are refreshed on every physical connection, and reads secrets
from AWS Secrets Manager.
"""

__version__ = "0.1.0"
