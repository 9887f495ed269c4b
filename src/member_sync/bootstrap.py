"""
Production wiring: settings -> pools -> reader/store -> engine.

The pools live exactly as long as the `open_engine` block; the CLI opens
one for a single pass or for the lifetime of the scheduler.
"""

import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager

from src.utils.db_pool import PostgresConnectionPool, SQLServerConnectionPool

from .config import SyncSettings
from .engine import ReconciliationEngine
from .exceptions import ConfigurationError
from .metrics import SyncMetrics
from .source import LegacySourceReader
from .target import PostgresTargetStore

logger = logging.getLogger(__name__)

REQUIRED_CONNECTION_FIELDS = ("host", "port", "database", "user", "password")

# A timed-out member keeps its connection until the query returns,
# so each pool has headroom beyond the one connection a pass uses
POOL_MAX_SIZE = 4


def check_connection_settings(settings: SyncSettings) -> None:
    """
    Raises:
        ConfigurationError: If a source or target connection field is missing
    """
    for label, config in (("source", settings.source_config), ("target", settings.target_config)):
        missing = [name for name in REQUIRED_CONNECTION_FIELDS if not config.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing {label} connection settings: {', '.join(missing)}"
            )


def create_source_pool(settings: SyncSettings) -> SQLServerConnectionPool:
    return SQLServerConnectionPool(
        **settings.source_config,
        query_timeout=settings.source_query_timeout,
        min_size=1,
        max_size=POOL_MAX_SIZE,
        pool_name="legacy",
    )


def create_target_pool(settings: SyncSettings) -> PostgresConnectionPool:
    return PostgresConnectionPool(
        **settings.target_config,
        autocommit=False,
        min_size=1,
        max_size=POOL_MAX_SIZE,
        pool_name="store",
    )


@contextmanager
def open_engine(
    settings: SyncSettings,
    metrics: SyncMetrics | None = None,
) -> Iterator[ReconciliationEngine]:
    """
    Build a ReconciliationEngine backed by real connection pools

    Args:
        settings: Validated settings
        metrics: Metrics holder (default: SyncMetrics on the global registry)

    Yields:
        Engine ready to run passes; pools are closed when the block exits

    Raises:
        ConfigurationError: If connection settings are incomplete
    """
    check_connection_settings(settings)

    with ExitStack() as stack:
        source_pool = stack.enter_context(create_source_pool(settings))
        target_pool = stack.enter_context(create_target_pool(settings))

        reader = LegacySourceReader(source_pool, settings.legacy_schema)
        store = PostgresTargetStore(target_pool, settings.target_schema)

        logger.info(
            f"Engine wired: legacy {settings.source_config['host']}/"
            f"{settings.source_config['database']} -> store "
            f"{settings.target_config['host']}/{settings.target_config['database']}"
        )
        yield ReconciliationEngine.from_settings(reader, store, settings, metrics=metrics)
