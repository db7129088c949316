"""
SQLite database adapter implementation.
"""

from __future__ import annotations

import itertools
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Sequence

from ..dialects.compiler import CommandCompiler
from ..dialects.sqlite import SQLiteDialect
from ..security.redaction import redact_params
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_query_ms
from .base import (
    AdapterConnectionError,
    AdapterExecutionError,
    AdapterTransactionError,
    ConnectionConfig,
    ConstraintViolation,
    ExecutionResult,
    TransactionHandle,
)

if TYPE_CHECKING:
    from ..persistence.commands import Command


_BEGIN_MODES = {"DEFERRED", "IMMEDIATE", "EXCLUSIVE"}


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection
    begin_mode: str | None = None
    active: TransactionHandle | None = None


class SQLiteAdapter:
    """
    Adapter wrapping the Python stdlib sqlite3 module.

    The connection runs in autocommit mode; transactions are opened with an
    explicit ``BEGIN`` so the unit of work controls their boundaries.
    """

    def __init__(self, slow_query_ms: int | None = None) -> None:
        self.dialect = SQLiteDialect()
        self.compiler = CommandCompiler(self.dialect)
        self._state: SQLiteConnectionState | None = None
        self._handles = itertools.count(1)
        self.logger = get_logger("adapters.sqlite")
        self.slow_query_ms = resolve_slow_query_ms(default=200, override=slow_query_ms)

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self, config: ConnectionConfig) -> sqlite3.Connection:
        path = self._normalize_path(config.url)
        timeout = config.timeout if config.timeout is not None else 5.0

        try:
            connection = sqlite3.connect(
                path,
                isolation_level=None,
                timeout=timeout,
                detect_types=sqlite3.PARSE_DECLTYPES,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise AdapterConnectionError(f"Failed to open SQLite database {config.descriptive_label()}.") from exc
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")

        begin_mode = None
        if config.isolation_level:
            begin_mode = config.isolation_level.upper()
            if begin_mode not in _BEGIN_MODES:
                raise AdapterConnectionError(f"Unsupported SQLite isolation level {config.isolation_level!r}.")

        self._state = SQLiteConnectionState(connection, begin_mode)
        self.logger.debug("Connected to SQLite %s", config.descriptive_label())
        return connection

    def close(self) -> None:
        if self._state:
            self._state.connection.close()
            self._state = None

    def _ensure_state(self) -> SQLiteConnectionState:
        if not self._state:
            raise AdapterConnectionError("SQLiteAdapter is not connected.")
        return self._state

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin(self) -> TransactionHandle:
        state = self._ensure_state()
        if state.active is not None:
            raise AdapterTransactionError("A transaction is already open on this SQLite connection.")
        statement = f"BEGIN {state.begin_mode}" if state.begin_mode else "BEGIN"
        try:
            state.connection.execute(statement)
        except sqlite3.Error as exc:
            raise AdapterTransactionError("Failed to begin SQLite transaction.") from exc
        handle = TransactionHandle(f"sqlite-{next(self._handles)}")
        state.active = handle
        return handle

    def commit(self, tx: TransactionHandle) -> None:
        state = self._check(tx)
        try:
            state.connection.execute("COMMIT")
        except sqlite3.Error as exc:
            if state.connection.in_transaction:
                state.connection.rollback()
            raise AdapterTransactionError("Failed to commit SQLite transaction.") from exc
        finally:
            self._finish(state, tx)

    def rollback(self, tx: TransactionHandle) -> None:
        state = self._check(tx)
        try:
            if state.connection.in_transaction:
                state.connection.execute("ROLLBACK")
        except sqlite3.Error as exc:
            raise AdapterTransactionError("Failed to roll back SQLite transaction.") from exc
        finally:
            self._finish(state, tx)

    def _check(self, tx: TransactionHandle) -> SQLiteConnectionState:
        state = self._ensure_state()
        if state.active is not tx or not tx.active:
            raise AdapterTransactionError(f"Transaction {tx.adapter} is not active on this connection.")
        return state

    @staticmethod
    def _finish(state: SQLiteConnectionState, tx: TransactionHandle) -> None:
        tx.active = False
        state.active = None

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    def execute(self, tx: TransactionHandle, command: "Command") -> ExecutionResult:
        state = self._check(tx)
        statement = self.compiler.compile(command)
        cursor = self._run(state.connection, statement.sql, statement.params)
        tx.statements += 1
        generated = None
        if getattr(command, "returning", None):
            generated = cursor.lastrowid
        return ExecutionResult(affected_rows=cursor.rowcount, generated_key=generated)

    def fetch(self, table: str, columns: Sequence[str], where: Mapping[str, Any]) -> List[Dict[str, Any]]:
        state = self._ensure_state()
        statement = self.compiler.select(table, columns, where)
        cursor = self._run(state.connection, statement.sql, statement.params)
        return [dict(row) for row in cursor.fetchall()]

    def execute_sql(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        state = self._ensure_state()
        return self._run(state.connection, sql, tuple(params or ()))

    def _run(self, connection: sqlite3.Connection, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        cursor = connection.cursor()
        with time_call(
            "sqlite.execute",
            self.logger,
            sql=sql,
            params=redact_params(params),
            threshold_ms=self.slow_query_ms,
        ):
            try:
                cursor.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolation(str(exc)) from exc
            except sqlite3.Error as exc:
                raise AdapterExecutionError(str(exc)) from exc
        return cursor

    @staticmethod
    def _normalize_path(url: str) -> str:
        # Query options were already parsed into the ConnectionConfig.
        url = url.split("?", 1)[0]
        if url in ("sqlite:///:memory:", "sqlite://", ":memory:"):
            return ":memory:"
        prefix = "sqlite:///"
        if url.startswith(prefix):
            return url[len(prefix) :]
        return url
