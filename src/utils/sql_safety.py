"""
Identifier handling for statements built from configurable table names.

Legacy tables are configured as [schema.]table and store tables as a bare
name. Neither can travel as a bound parameter, so names are checked against
an ASCII-only pattern and wrapped in the dialect's delimiters before they
reach SQL text. Every value in a statement is still bound as a parameter.
"""

import re
from collections.abc import Iterable
from typing import Literal

DbType = Literal["postgresql", "sqlserver"]

NAME_PART = r"[A-Za-z_][A-Za-z0-9_]*"
VALID_IDENTIFIER = re.compile(rf"^{NAME_PART}$")
VALID_SCHEMA_TABLE = re.compile(rf"^{NAME_PART}(?:\.{NAME_PART})?$")

DELIMITERS: dict[str, tuple[str, str]] = {
    "postgresql": ('"', '"'),
    "sqlserver": ("[", "]"),
}


def _check_name(name: str, pattern: re.Pattern, kind: str) -> None:
    if not name:
        raise ValueError(f"{kind} cannot be empty")
    if not pattern.match(name):
        raise ValueError(
            f"Invalid {kind}: {name!r}. Use ASCII letters, digits and "
            "underscores, starting with a letter or underscore."
        )


def validate_identifier(identifier: str) -> None:
    """Raise ValueError unless `identifier` is a single safe name."""
    _check_name(identifier, VALID_IDENTIFIER, "SQL identifier")


def validate_schema_table(schema_table: str) -> None:
    """Raise ValueError unless `schema_table` is `table` or `schema.table`."""
    _check_name(schema_table, VALID_SCHEMA_TABLE, "schema.table name")


def _delimit(part: str, db_type: DbType) -> str:
    if db_type not in DELIMITERS:
        raise ValueError(f"Unsupported database type: {db_type!r}")
    opening, closing = DELIMITERS[db_type]
    return f"{opening}{part}{closing}"


def quote_identifier(identifier: str, db_type: DbType) -> str:
    """
    Validate and delimit a column or store table name.

    Args:
        identifier: Bare name, e.g. "balance"
        db_type: "postgresql" ("balance") or "sqlserver" ([balance])

    Raises:
        ValueError: If the name or the database type is not accepted
    """
    validate_identifier(identifier)
    return _delimit(identifier, db_type)


def quote_schema_table(schema_table: str, db_type: DbType) -> str:
    """Validate and delimit each part of e.g. "dbo.wgcdoccab"."""
    validate_schema_table(schema_table)
    return ".".join(_delimit(part, db_type) for part in schema_table.split("."))


def quote_columns(columns: Iterable[str], db_type: DbType) -> str:
    """Column list for INSERT/SELECT, in the given order."""
    return ", ".join(quote_identifier(column, db_type) for column in columns)


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Check a paging integer (OFFSET, FETCH NEXT) before it is bound.

    bool is rejected even though it subclasses int.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{param_name} must be an integer, got {value!r}")
    if value < min_value:
        raise ValueError(f"{param_name} must be >= {min_value}, got {value}")
