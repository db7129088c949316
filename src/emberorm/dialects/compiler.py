"""
Compiles persistence commands into parameterized SQL for a dialect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Mapping, Sequence, Tuple

from .base import Dialect

if TYPE_CHECKING:
    from ..persistence.commands import Command


@dataclass(frozen=True)
class CompiledStatement:
    sql: str
    params: Tuple[Any, ...] = ()


class CommandCompiler:
    """
    Renders Insert/Update/Delete commands and simple equality selects.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect

    def compile(self, command: "Command") -> CompiledStatement:
        from ..persistence.commands import Delete, Insert, Update

        if isinstance(command, Insert):
            return self.insert(command.table, command.values, returning=command.returning)
        if isinstance(command, Update):
            return self.update(command.table, command.values, command.where)
        if isinstance(command, Delete):
            return self.delete(command.table, command.where)
        raise TypeError(f"Cannot compile command of type {type(command).__name__}")

    def insert(self, table: str, values: Mapping[str, Any], *, returning: str | None = None) -> CompiledStatement:
        target = self.dialect.format_table(table)
        if values:
            columns = ", ".join(self.dialect.quote_identifier(column) for column in values)
            placeholders = ", ".join(self._placeholder(index) for index in range(len(values)))
            sql = f"INSERT INTO {target} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {target} DEFAULT VALUES"
        if returning and self.dialect.capabilities.supports_returning:
            sql = f"{sql} {self.dialect.returning_clause(returning)}"
        return CompiledStatement(sql, tuple(values.values()))

    def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> CompiledStatement:
        if not values:
            raise ValueError(f"UPDATE of '{table}' without values")
        assignments = ", ".join(
            f"{self.dialect.quote_identifier(column)} = {self._placeholder(index)}"
            for index, column in enumerate(values)
        )
        condition, params = self._where(where, offset=len(values))
        sql = f"UPDATE {self.dialect.format_table(table)} SET {assignments}{condition}"
        return CompiledStatement(sql, tuple(values.values()) + params)

    def delete(self, table: str, where: Mapping[str, Any]) -> CompiledStatement:
        if not where:
            raise ValueError(f"DELETE from '{table}' without a condition")
        condition, params = self._where(where)
        return CompiledStatement(f"DELETE FROM {self.dialect.format_table(table)}{condition}", params)

    def select(
        self,
        table: str,
        columns: Sequence[str],
        where: Mapping[str, Any],
        *,
        limit: int | None = None,
    ) -> CompiledStatement:
        select_list = ", ".join(self.dialect.quote_identifier(column) for column in columns) or "*"
        condition, params = self._where(where)
        sql = f"SELECT {select_list} FROM {self.dialect.format_table(table)}{condition}"
        limit_sql = self.dialect.limit_clause(limit, None)
        if limit_sql:
            sql = f"{sql} {limit_sql}"
        return CompiledStatement(sql, params)

    def _where(self, where: Mapping[str, Any], *, offset: int = 0) -> Tuple[str, Tuple[Any, ...]]:
        if not where:
            return "", ()
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in where.items():
            quoted = self.dialect.quote_identifier(column)
            if value is None:
                clauses.append(f"{quoted} IS NULL")
                continue
            clauses.append(f"{quoted} = {self._placeholder(offset + len(params))}")
            params.append(value)
        return " WHERE " + " AND ".join(clauses), tuple(params)

    def _placeholder(self, index: int) -> str:
        return self.dialect.parameter_placeholder(index + 1)
