"""
HashiCorp Vault client for fetching database credentials

Credentials for the legacy SQL Server source and the PostgreSQL store are
kept in the KV v2 secrets engine, one secret per database:

    <prefix>/sqlserver   server (or host), port, database, username, password
    <prefix>/postgresql  host, port, database, username, password

and are returned in the shape the connection pools take
(host, port, database, user, password).
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_SECRET_PREFIX = "secret/database"
DEFAULT_PORTS = {"sqlserver": 1433, "postgresql": 5432}
SAFE_PATH = re.compile(r"^[a-zA-Z0-9/_-]+$")


class VaultClient:
    """
    HashiCorp Vault client for secrets management

    Uses the KV v2 secrets engine over the HTTP API.
    """

    def __init__(
        self,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        namespace: Optional[str] = None,
        secret_prefix: Optional[str] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Vault client

        Args:
            vault_addr: Vault server address (default: from VAULT_ADDR env var)
            vault_token: Vault authentication token (default: from VAULT_TOKEN env var)
            namespace: Vault namespace (optional, for Vault Enterprise)
            secret_prefix: Mount and path holding the database secrets
                (default: VAULT_SECRET_PREFIX or "secret/database")
            timeout: HTTP timeout in seconds

        Raises:
            ValueError: If vault_addr or vault_token are not provided
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.namespace = namespace or os.getenv("VAULT_NAMESPACE")
        self.secret_prefix = (
            secret_prefix or os.getenv("VAULT_SECRET_PREFIX") or DEFAULT_SECRET_PREFIX
        ).strip("/")
        self.timeout = timeout

        if not self.vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR environment variable "
                "or pass vault_addr parameter."
            )

        if not self.vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN environment variable "
                "or pass vault_token parameter."
            )

        self.vault_addr = self.vault_addr.rstrip("/")

        self.session = requests.Session()
        self.session.headers.update({
            "X-Vault-Token": self.vault_token,
            "Content-Type": "application/json",
        })
        if self.namespace:
            self.session.headers["X-Vault-Namespace"] = self.namespace

        logger.info(f"Initialized Vault client for {self.vault_addr}")

    @staticmethod
    def _kv2_path(secret_path: str) -> str:
        if not secret_path or not isinstance(secret_path, str):
            raise ValueError("secret_path must be a non-empty string")

        if ".." in secret_path or secret_path.startswith("//"):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. "
                "Path traversal attempts are not allowed."
            )

        if not SAFE_PATH.match(secret_path):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. "
                "Only alphanumeric characters, slashes, underscores, and hyphens are allowed."
            )

        # KV v2 reads go through <mount>/data/<path>
        if "/data/" in secret_path:
            return secret_path
        mount, _, rest = secret_path.partition("/")
        return f"{mount}/data/{rest}" if rest else f"{mount}/data"

    def get_secret(self, secret_path: str) -> Dict[str, Any]:
        """
        Fetch secret from Vault KV v2 secrets engine

        Args:
            secret_path: Path to secret (e.g., "secret/database/sqlserver")

        Returns:
            Dictionary containing secret data

        Raises:
            ValueError: If secret_path is invalid or the secret is missing/empty
            requests.RequestException: If Vault request fails
        """
        path = self._kv2_path(secret_path)
        url = f"{self.vault_addr}/v1/{path}"

        logger.debug(f"Fetching secret from: {url}")
        response = self.session.get(url, timeout=self.timeout)

        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {path}")

        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {path}")

        return secret_data

    def get_database_credentials(self, database_type: str) -> Dict[str, Any]:
        """
        Fetch connection settings for one database

        Args:
            database_type: "sqlserver" (legacy source) or "postgresql" (store)

        Returns:
            Dictionary with host, port, database, user, password

        Raises:
            ValueError: If database_type is invalid or required fields are missing
        """
        if database_type not in DEFAULT_PORTS:
            raise ValueError(
                f"Unsupported database_type: {database_type!r}. "
                "Must be 'sqlserver' or 'postgresql'."
            )

        secret = self.get_secret(f"{self.secret_prefix}/{database_type}")

        host = secret.get("host") or secret.get("server")
        port = secret.get("port")
        # SQL Server secrets commonly hold "server" as host,port
        if host and "," in str(host) and port is None:
            host, port = str(host).split(",", 1)

        credentials = {
            "host": host,
            "port": int(port) if port is not None else DEFAULT_PORTS[database_type],
            "database": secret.get("database"),
            "user": secret.get("username") or secret.get("user"),
            "password": secret.get("password"),
        }

        missing = [key for key, value in credentials.items() if value in (None, "")]
        if missing:
            raise ValueError(
                f"Missing required fields in {database_type} secret: {', '.join(missing)}"
            )

        logger.info(f"Fetched {database_type} credentials from Vault")
        return credentials

    def health_check(self) -> bool:
        """
        Check if Vault is accessible and unsealed

        Returns:
            True if Vault is healthy, False otherwise
        """
        url = f"{self.vault_addr}/v1/sys/health"

        try:
            response = self.session.get(url, timeout=5)
            # 200 active, 429 standby, 472 DR secondary, 473 performance standby
            return response.status_code in (200, 429, 472, 473)
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
