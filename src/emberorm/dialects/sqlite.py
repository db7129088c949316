"""
SQLite dialect implementation.
"""

from __future__ import annotations

from typing import Final

from .base import DialectCapabilities


class SQLiteDialect:
    """
    SQLite dialect using qmark param style and minimal capabilities.
    """

    name: Final[str] = "sqlite"
    capabilities: Final[DialectCapabilities] = DialectCapabilities(
        supports_returning=False,
    )

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def format_table(self, table_name: str) -> str:
        return self.quote_identifier(table_name)

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        parts: list[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            if limit is None:
                parts.append("LIMIT -1")
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def parameter_placeholder(self, position: int | None = None) -> str:
        return "?"

    def returning_clause(self, column: str) -> str:
        # Generated keys are read from cursor.lastrowid.
        return ""
