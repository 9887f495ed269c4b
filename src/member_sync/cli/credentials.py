"""
Settings resolution for the CLI.

Order of precedence, lowest first: environment variables, Vault (with
--use-vault), command-line flags.
"""

import argparse
import logging

import requests

from src.utils.retry import retry_with_backoff
from src.utils.vault_client import VaultClient

from ..config import SyncSettings
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONNECTION_FIELDS = ("host", "port", "database", "user", "password")


@retry_with_backoff(
    max_retries=2,
    base_delay=1.0,
    retryable_exceptions=(requests.ConnectionError, requests.Timeout),
)
def _read_database_secrets(vault_client: VaultClient) -> tuple[dict, dict]:
    return (
        vault_client.get_database_credentials("sqlserver"),
        vault_client.get_database_credentials("postgresql"),
    )


def get_credentials_from_vault() -> tuple[dict, dict]:
    """
    Fetch source and target connection settings from Vault

    Connection errors and timeouts are retried twice before giving up.

    Returns:
        Tuple of (source_config, target_config)

    Raises:
        ConfigurationError: If Vault is not configured, sealed or
            unreachable, or the secrets are unusable
    """
    try:
        vault_client = VaultClient()
        if not vault_client.health_check():
            raise ConfigurationError(
                f"Vault at {vault_client.vault_addr} is sealed or unreachable"
            )
        source, target = _read_database_secrets(vault_client)
    except (ValueError, requests.RequestException) as e:
        raise ConfigurationError(f"Failed to fetch credentials from Vault: {e}") from e

    logger.info("Fetched database credentials from Vault")
    return source, target


def _apply_overrides(config: dict, args: argparse.Namespace, prefix: str) -> None:
    for name in CONNECTION_FIELDS:
        value = getattr(args, f"{prefix}_{name}", None)
        if value is not None:
            config[name] = value


def load_settings(args: argparse.Namespace) -> SyncSettings:
    """
    Build validated settings for a run or schedule command

    Args:
        args: Parsed command-line arguments

    Returns:
        SyncSettings with Vault and flag overrides applied

    Raises:
        ConfigurationError: If any setting is missing or invalid
    """
    settings = SyncSettings.from_env()

    if getattr(args, "use_vault", False):
        source, target = get_credentials_from_vault()
        settings.source_config.update(source)
        settings.target_config.update(target)

    _apply_overrides(settings.source_config, args, "source")
    _apply_overrides(settings.target_config, args, "target")

    if getattr(args, "batch_size", None) is not None:
        settings.batch_size = args.batch_size
    if getattr(args, "member_timeout", None) is not None:
        settings.member_timeout_seconds = args.member_timeout
    if getattr(args, "interval", None) is not None:
        settings.interval_seconds = args.interval
        settings.cron = None
    if getattr(args, "cron", None):
        settings.cron = args.cron
    if getattr(args, "output_dir", None):
        settings.report_dir = args.output_dir

    settings.validate()
    return settings
