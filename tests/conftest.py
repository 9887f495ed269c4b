"""
Pytest configuration and fixtures for member sync tests.
Provides in-memory source/store fakes and an engine factory.
"""

import os
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from tests.fakes import FakeSourceReader, FakeTargetStore


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set default test environment variables if not already set."""
    defaults = {
        "SQLSERVER_HOST": "localhost",
        "SQLSERVER_DATABASE": "legacy_erp",
        "SQLSERVER_USER": "sa",
        "SQLSERVER_PASSWORD": "YourStrong!Passw0rd",
        "POSTGRES_HOST": "localhost",
        "POSTGRES_PORT": "5432",
        "POSTGRES_DB": "members_app",
        "POSTGRES_USER": "postgres",
        "POSTGRES_PASSWORD": "postgres_secure_password",
        "VAULT_ADDR": "http://localhost:8200",
        "VAULT_TOKEN": "dev-root-token",
    }

    for key, value in defaults.items():
        if key not in os.environ:
            monkeypatch.setenv(key, value)


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def fake_reader() -> FakeSourceReader:
    return FakeSourceReader()


@pytest.fixture
def fake_store() -> FakeTargetStore:
    return FakeTargetStore()


@pytest.fixture
def make_engine(fake_reader, fake_store, registry):
    """Factory for engines wired to the fakes with cheap password hashing."""
    from src.member_sync.engine import ReconciliationEngine
    from src.member_sync.metrics import SyncMetrics

    def factory(**overrides):
        options = {
            "batch_size": 2,
            "lookup_chunk_size": 2,
            "metrics": SyncMetrics(registry=registry),
            "password_hasher": lambda password: f"hashed:{password}",
        }
        options.update(overrides)
        return ReconciliationEngine(fake_reader, fake_store, **options)

    return factory
