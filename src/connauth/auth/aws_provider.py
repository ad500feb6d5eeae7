"""
AWS credential provider.

Establishes one boto3 session from IamOptions when the provider is created
and hands out clients built from it. With assume_role_arn set, STS
AssumeRole runs at start-up and again before the temporary keys expire.

Supported Authentication Methods:
    - Static keys: access key + secret key (+ optional session token)
    - Default chain: environment variables, shared config, instance profile
    - Assumed role: any of the above, then STS AssumeRole

Example:
    >>> provider = AwsIamProvider(IamOptions(region="us-east-1"))
    >>> client = provider.secrets_manager()
    >>> token = provider.rds_auth_token("db.example.com", 5432, "app_user")
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.credentials import RefreshableCredentials
from botocore.exceptions import BotoCoreError, ClientError
from botocore.session import get_session as get_botocore_session

from connauth.auth.aws_environment import IamOptions
from connauth.auth.token_hooks import RdsIamTokenSource, create_before_connect_hook
from connauth.errors import AwsAuthError

if TYPE_CHECKING:
    from connauth.postgres.pool_config import ConnectionPoolConfig

logger = logging.getLogger(__name__)


DEFAULT_CLIENT_CONFIG = BotoConfig(
    connect_timeout=5,
    read_timeout=30,
    retries={"max_attempts": 3, "mode": "standard"},
)


class AwsIamProvider:
    """
    Long-lived AWS session owner.

    Attributes:
        options: IAM options the session was built from
    """

    def __init__(self, options: IamOptions, client_config: BotoConfig | None = None):
        self.options = options
        self._client_config = client_config or DEFAULT_CLIENT_CONFIG
        self._clients: dict[str, Any] = {}
        self._session = self._create_session()

    @property
    def auth_mode(self) -> str:
        """
        Get current authentication mode for diagnostics.

        Returns:
            "assume_role", "static" or "default_chain"
        """
        if self.options.assume_role_arn:
            return "assume_role"
        if self.options.access_key and self.options.secret_key:
            return "static"
        return "default_chain"

    def _create_session(self) -> boto3.Session:
        opts = self.options
        kwargs: dict[str, Any] = {"region_name": opts.region or None}
        if opts.access_key and opts.secret_key:
            kwargs["aws_access_key_id"] = opts.access_key
            kwargs["aws_secret_access_key"] = opts.secret_key
            if opts.session_token:
                kwargs["aws_session_token"] = opts.session_token

        try:
            session = boto3.Session(**kwargs)
            if opts.assume_role_arn:
                session = self._assume_role(session)
        except (BotoCoreError, ClientError) as e:
            raise AwsAuthError(
                f"Failed to establish AWS session\n"
                f"Auth mode: {self.auth_mode}\n"
                f"Error: {str(e)}",
                cause=e,
                context={"region": opts.region},
            ) from e

        logger.info(
            "Established AWS session",
            extra={"region": opts.region, "auth_mode": self.auth_mode},
        )
        return session

    def _assume_role(self, session: boto3.Session) -> boto3.Session:
        opts = self.options
        sts = session.client("sts", config=self._client_config)

        def fetch_role_credentials() -> dict[str, str]:
            response = sts.assume_role(
                RoleArn=opts.assume_role_arn,
                RoleSessionName=opts.session_name,
            )
            credentials = response["Credentials"]
            expiration = credentials["Expiration"]
            if isinstance(expiration, datetime):
                expiration = expiration.isoformat()
            logger.debug(
                "Assumed AWS role",
                extra={"role_arn": opts.assume_role_arn, "session_name": opts.session_name},
            )
            return {
                "access_key": credentials["AccessKeyId"],
                "secret_key": credentials["SecretAccessKey"],
                "token": credentials["SessionToken"],
                "expiry_time": expiration,
            }

        # Re-assumes the role shortly before the temporary keys expire
        refreshable = RefreshableCredentials.create_from_metadata(
            metadata=fetch_role_credentials(),
            refresh_using=fetch_role_credentials,
            method="sts-assume-role",
        )
        botocore_session = get_botocore_session()
        botocore_session._credentials = refreshable
        return boto3.Session(botocore_session=botocore_session, region_name=opts.region or None)

    def client(self, service_name: str) -> Any:
        """Get or create a cached client for an AWS service."""
        if service_name not in self._clients:
            kwargs: dict[str, Any] = {"config": self._client_config}
            if self.options.endpoint:
                kwargs["endpoint_url"] = self.options.endpoint
            self._clients[service_name] = self._session.client(service_name, **kwargs)
        return self._clients[service_name]

    def secrets_manager(self) -> Any:
        """Secrets Manager client bound to this session."""
        return self.client("secretsmanager")

    def rds_auth_token(self, host: str, port: int | str, user: str) -> str:
        """
        Generate an RDS IAM authentication token.

        The token is signed locally with the session credentials. Blocks only
        when assumed-role credentials are due for refresh.
        """
        return self.client("rds").generate_db_auth_token(
            DBHostname=host,
            Port=int(port),
            DBUsername=user,
            Region=self.options.region,
        )

    def update_pool_config(self, config: "ConnectionPoolConfig") -> None:
        """
        Install an RDS IAM token hook on a pool configuration.

        The static password from the connection string is dropped and every
        connection attempt gets a freshly signed token. TLS is required by
        RDS IAM auth, so sslmode defaults to "require".
        """
        params = config.conn_params
        source = RdsIamTokenSource(
            self,
            host=params.get("host", "localhost"),
            port=params.get("port", "5432"),
            user=params.get("user", ""),
        )
        params.pop("password", None)
        params.setdefault("sslmode", "require")
        config.before_connect = create_before_connect_hook(source)

    def close(self) -> None:
        """Release cached clients. Safe to call more than once."""
        clients, self._clients = self._clients, {}
        for client in clients.values():
            client.close()


__all__ = ["AwsIamProvider", "DEFAULT_CLIENT_CONFIG"]
