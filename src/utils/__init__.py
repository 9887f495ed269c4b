"""
Shared infrastructure for the member sync service

Provides:
- db_pool: connection pools for SQL Server and PostgreSQL
- retry: backoff for transient database errors
- logging, tracing, metrics: observability
- sql_safety: identifier validation and quoting
- vault_client: HashiCorp Vault integration for database credentials
"""

__version__ = "1.0.0"
