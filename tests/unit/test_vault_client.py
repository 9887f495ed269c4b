"""
Unit tests for the Vault client

requests.Session is patched; no Vault server is needed.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.utils.vault_client import VaultClient


def vault_response(data, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"data": {"data": data}}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


@pytest.fixture
def session():
    with patch('src.utils.vault_client.requests.Session') as mock_session_cls:
        mock_session = MagicMock()
        mock_session.headers = {}
        mock_session_cls.return_value = mock_session
        yield mock_session


class TestVaultClientInit:
    """Test VaultClient construction"""

    def test_from_environment(self, session, monkeypatch):
        monkeypatch.setenv("VAULT_ADDR", "http://vault:8200/")
        monkeypatch.setenv("VAULT_TOKEN", "s.token")
        monkeypatch.setenv("VAULT_NAMESPACE", "members")

        client = VaultClient()

        assert client.vault_addr == "http://vault:8200"
        assert session.headers["X-Vault-Token"] == "s.token"
        assert session.headers["X-Vault-Namespace"] == "members"
        assert client.secret_prefix == "secret/database"

    def test_missing_address(self, session, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)

        with pytest.raises(ValueError, match="Vault address not provided"):
            VaultClient(vault_token="t")

    def test_missing_token(self, session, monkeypatch):
        monkeypatch.delenv("VAULT_TOKEN", raising=False)

        with pytest.raises(ValueError, match="Vault token not provided"):
            VaultClient(vault_addr="http://vault:8200")


class TestGetSecret:
    """Test KV v2 secret reads"""

    def test_reads_kv2_data_path(self, session):
        session.get.return_value = vault_response({"password": "pw"})
        client = VaultClient("http://vault:8200", "t")

        secret = client.get_secret("secret/database/postgresql")

        assert secret == {"password": "pw"}
        url = session.get.call_args.args[0]
        assert url == "http://vault:8200/v1/secret/data/database/postgresql"

    def test_explicit_data_path_kept(self, session):
        session.get.return_value = vault_response({"a": 1})
        client = VaultClient("http://vault:8200", "t")

        client.get_secret("kv/data/app")

        assert session.get.call_args.args[0].endswith("/v1/kv/data/app")

    @pytest.mark.parametrize("path", ["../sys/policy", "//secret", "secret/db?x=1", ""])
    def test_rejects_unsafe_paths(self, session, path):
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(ValueError):
            client.get_secret(path)

        session.get.assert_not_called()

    def test_missing_secret(self, session):
        session.get.return_value = vault_response({}, status_code=404)
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(ValueError, match="Secret not found"):
            client.get_secret("secret/database/sqlserver")

    def test_empty_secret(self, session):
        session.get.return_value = vault_response({})
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(ValueError, match="No data found"):
            client.get_secret("secret/database/sqlserver")

    def test_server_error_propagates(self, session):
        session.get.return_value = vault_response({}, status_code=503)
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(requests.HTTPError):
            client.get_secret("secret/database/sqlserver")


class TestDatabaseCredentials:
    """Test credential mapping for the connection pools"""

    def test_sqlserver_server_with_port(self, session):
        session.get.return_value = vault_response({
            "server": "erp.internal,14330",
            "database": "ERP",
            "username": "sync_reader",
            "password": "pw",
        })
        client = VaultClient("http://vault:8200", "t")

        credentials = client.get_database_credentials("sqlserver")

        assert credentials == {
            "host": "erp.internal",
            "port": 14330,
            "database": "ERP",
            "user": "sync_reader",
            "password": "pw",
        }

    def test_postgres_default_port(self, session):
        session.get.return_value = vault_response({
            "host": "pg", "database": "members_app", "user": "app", "password": "pw",
        })
        client = VaultClient("http://vault:8200", "t", secret_prefix="kv/sync/")

        credentials = client.get_database_credentials("postgresql")

        assert credentials["port"] == 5432
        assert session.get.call_args.args[0].endswith("/v1/kv/data/sync/postgresql")

    def test_missing_fields(self, session):
        session.get.return_value = vault_response({"host": "pg", "password": "pw"})
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(ValueError, match="database, user"):
            client.get_database_credentials("postgresql")

    def test_unsupported_database_type(self, session):
        client = VaultClient("http://vault:8200", "t")

        with pytest.raises(ValueError, match="Unsupported database_type"):
            client.get_database_credentials("mysql")


class TestHealthCheck:
    """Test Vault health check"""

    @pytest.mark.parametrize("status_code,healthy", [(200, True), (429, True), (503, False)])
    def test_status_codes(self, session, status_code, healthy):
        session.get.return_value = MagicMock(status_code=status_code)
        client = VaultClient("http://vault:8200", "t")

        assert client.health_check() is healthy

    def test_connection_error(self, session):
        session.get.side_effect = requests.ConnectionError("refused")
        client = VaultClient("http://vault:8200", "t")

        assert client.health_check() is False
