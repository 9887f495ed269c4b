"""
Settings for the member sync service.

Settings are read from environment variables (see SyncSettings.from_env)
and can be overridden by CLI flags or Vault credentials.
"""

import os
from dataclasses import dataclass, field
from typing import Any

from src.utils.sql_safety import validate_identifier, validate_schema_table

from .exceptions import ConfigurationError

TRUE_VALUES = ("true", "1", "yes")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in TRUE_VALUES


def _env_int(name: str, default: int | None, min_value: int = 0) -> int | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e
    if parsed < min_value:
        raise ConfigurationError(f"{name} must be >= {min_value}, got {parsed}")
    return parsed


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        parsed = float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {parsed}")
    return parsed


@dataclass
class LegacySchema:
    """Table names in the legacy database."""

    members_table: str = "dbo.wgcterceiros"
    pending_table: str = "dbo.wgcpendentes"
    documents_table: str = "dbo.wgcdoccab"

    def validate(self) -> None:
        for name in (self.members_table, self.pending_table, self.documents_table):
            try:
                validate_schema_table(name)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e


@dataclass
class TargetSchema:
    """Table names in the application database."""

    members_table: str = "members"
    transactions_table: str = "transactions"

    def validate(self) -> None:
        for name in (self.members_table, self.transactions_table):
            try:
                validate_identifier(name)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e


@dataclass
class SyncSettings:
    """Runtime settings for one member sync process."""

    source_config: dict[str, Any] = field(default_factory=dict)
    target_config: dict[str, Any] = field(default_factory=dict)
    legacy_schema: LegacySchema = field(default_factory=LegacySchema)
    target_schema: TargetSchema = field(default_factory=TargetSchema)
    batch_size: int = 1000
    lookup_chunk_size: int = 1000
    interval_seconds: int = 60
    cron: str | None = None
    member_timeout_seconds: float | None = None
    source_query_timeout: int = 120
    default_password: str | None = None
    invert_member_balance: bool = True
    invert_transaction_balance: bool = False
    report_dir: str | None = None
    metrics_port: int = 9091

    def validate(self) -> None:
        """
        Validate settings that would otherwise fail deep inside a pass.

        Raises:
            ConfigurationError: If any setting is out of range
        """
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.lookup_chunk_size < 1:
            raise ConfigurationError(
                f"lookup_chunk_size must be >= 1, got {self.lookup_chunk_size}"
            )
        if self.cron is None and self.interval_seconds < 1:
            raise ConfigurationError(
                f"interval_seconds must be >= 1, got {self.interval_seconds}"
            )
        if self.member_timeout_seconds is not None and self.member_timeout_seconds <= 0:
            raise ConfigurationError("member_timeout_seconds must be positive")
        self.legacy_schema.validate()
        self.target_schema.validate()

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """
        Build settings from environment variables

        Environment variables:
            SQLSERVER_HOST, SQLSERVER_PORT, SQLSERVER_DATABASE,
            SQLSERVER_USER, SQLSERVER_PASSWORD: legacy source connection
            POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB,
            POSTGRES_USER, POSTGRES_PASSWORD: application store connection
            SYNC_BATCH_SIZE: source page size (default: 1000)
            SYNC_INTERVAL_SECONDS / SYNC_CRON: schedule
            SYNC_MEMBER_TIMEOUT_SECONDS: per-member time budget
            SYNC_DEFAULT_PASSWORD: credential for newly created members
            SYNC_REPORT_DIR: directory for JSON pass reports
            METRICS_PORT: Prometheus port, 0 disables (default: 9091)
        """
        settings = cls(
            source_config={
                "host": os.getenv("SQLSERVER_HOST", "localhost"),
                "port": _env_int("SQLSERVER_PORT", 1433, min_value=1),
                "database": os.getenv("SQLSERVER_DATABASE"),
                "user": os.getenv("SQLSERVER_USER", "sa"),
                "password": os.getenv("SQLSERVER_PASSWORD"),
            },
            target_config={
                "host": os.getenv("POSTGRES_HOST", "localhost"),
                "port": _env_int("POSTGRES_PORT", 5432, min_value=1),
                "database": os.getenv("POSTGRES_DB"),
                "user": os.getenv("POSTGRES_USER", "postgres"),
                "password": os.getenv("POSTGRES_PASSWORD"),
            },
            legacy_schema=LegacySchema(
                members_table=os.getenv("LEGACY_MEMBERS_TABLE", LegacySchema.members_table),
                pending_table=os.getenv("LEGACY_PENDING_TABLE", LegacySchema.pending_table),
                documents_table=os.getenv(
                    "LEGACY_DOCUMENTS_TABLE", LegacySchema.documents_table
                ),
            ),
            target_schema=TargetSchema(
                members_table=os.getenv("TARGET_MEMBERS_TABLE", TargetSchema.members_table),
                transactions_table=os.getenv(
                    "TARGET_TRANSACTIONS_TABLE", TargetSchema.transactions_table
                ),
            ),
            batch_size=_env_int("SYNC_BATCH_SIZE", 1000, min_value=1),
            lookup_chunk_size=_env_int("SYNC_LOOKUP_CHUNK_SIZE", 1000, min_value=1),
            interval_seconds=_env_int("SYNC_INTERVAL_SECONDS", 60, min_value=1),
            cron=os.getenv("SYNC_CRON") or None,
            member_timeout_seconds=_env_float("SYNC_MEMBER_TIMEOUT_SECONDS", None),
            source_query_timeout=_env_int("SQLSERVER_QUERY_TIMEOUT", 120),
            default_password=os.getenv("SYNC_DEFAULT_PASSWORD") or None,
            invert_member_balance=_env_bool("SYNC_INVERT_MEMBER_BALANCE", True),
            invert_transaction_balance=_env_bool("SYNC_INVERT_TRANSACTION_BALANCE", False),
            report_dir=os.getenv("SYNC_REPORT_DIR") or None,
            metrics_port=_env_int("METRICS_PORT", 9091),
        )
        settings.validate()
        return settings
