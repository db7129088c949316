"""
PostgreSQL dialect implementation.
"""

from __future__ import annotations

from typing import Final

from .base import DialectCapabilities


class PostgresDialect:
    """
    PostgreSQL dialect using percent positional parameters.
    """

    name: Final[str] = "postgresql"
    capabilities: Final[DialectCapabilities] = DialectCapabilities(
        supports_returning=True,
    )

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def format_table(self, table_name: str) -> str:
        if "." in table_name:
            schema, table = table_name.split(".", 1)
            return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"
        return self.quote_identifier(table_name)

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        parts: list[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def parameter_placeholder(self, position: int | None = None) -> str:
        return "%s"

    def returning_clause(self, column: str) -> str:
        return f"RETURNING {self.quote_identifier(column)}"
