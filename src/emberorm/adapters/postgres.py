"""
PostgreSQL database adapter implementation.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Sequence

from ..dialects.compiler import CommandCompiler
from ..dialects.postgres import PostgresDialect
from ..security.redaction import redact_params
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_query_ms
from .base import (
    AdapterConfigurationError,
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


def _load_driver():
    try:
        import psycopg

        return psycopg
    except ImportError:
        return None


@dataclass
class PostgresConnectionState:
    connection: Any
    config: ConnectionConfig
    driver: Any
    active: TransactionHandle | None = None


class PostgresAdapter:
    """
    Adapter wrapping the psycopg PostgreSQL driver.

    Generated keys are read back with ``RETURNING``.
    """

    def __init__(self, slow_query_ms: int | None = None) -> None:
        self.dialect = PostgresDialect()
        self.compiler = CommandCompiler(self.dialect)
        self._state: PostgresConnectionState | None = None
        self._handles = itertools.count(1)
        self.logger = get_logger("adapters.postgres")
        self.slow_query_ms = resolve_slow_query_ms(default=100, override=slow_query_ms)

    def connect(self, config: ConnectionConfig) -> Any:
        driver = _load_driver()
        if driver is None:
            raise AdapterConfigurationError("psycopg is required to use PostgresAdapter.")

        options = dict(config.options or {})
        if config.ssl:
            for key, value in config.ssl.postgres_options().items():
                options.setdefault(key, value)
        if config.timeout and "connect_timeout" not in options:
            options["connect_timeout"] = int(config.timeout)

        self.logger.info(
            "Connecting to PostgreSQL %s (autocommit=%s)",
            config.descriptive_label(),
            config.autocommit,
        )

        try:
            connection = driver.connect(config.url, **options)
        except Exception as exc:
            raise AdapterConnectionError("Failed to connect to PostgreSQL.") from exc
        connection.autocommit = bool(config.autocommit)
        if config.isolation_level:
            setattr(connection, "isolation_level", config.isolation_level)

        self._state = PostgresConnectionState(connection, config, driver)
        return connection

    def close(self) -> None:
        if self._state:
            try:
                self._state.connection.close()
            finally:
                self._state = None

    def _ensure_connection(self):
        if not self._state:
            raise AdapterConnectionError("PostgresAdapter is not connected.")
        conn = self._state.connection
        if getattr(conn, "closed", False):
            if self._state.active is not None:
                raise AdapterConnectionError("PostgreSQL connection closed inside a transaction.")
            self.logger.warning("PostgreSQL connection closed; reconnecting.")
            conn = self.connect(self._state.config)
        return conn

    # Transactions ------------------------------------------------------------
    def begin(self) -> TransactionHandle:
        connection = self._ensure_connection()
        state = self._state
        if state.active is not None:
            raise AdapterTransactionError("A transaction is already open on this PostgreSQL connection.")
        if getattr(connection, "autocommit", False):
            # psycopg opens transactions implicitly only outside autocommit.
            self._run(connection, "BEGIN", ())
        handle = TransactionHandle(f"postgres-{next(self._handles)}")
        state.active = handle
        return handle

    def commit(self, tx: TransactionHandle) -> None:
        connection = self._check(tx)
        try:
            connection.commit()
        except Exception as exc:
            raise AdapterTransactionError("Failed to commit PostgreSQL transaction.") from exc
        finally:
            self._finish(tx)

    def rollback(self, tx: TransactionHandle) -> None:
        connection = self._check(tx)
        try:
            connection.rollback()
        except Exception as exc:
            raise AdapterTransactionError("Failed to roll back PostgreSQL transaction.") from exc
        finally:
            self._finish(tx)

    def _check(self, tx: TransactionHandle):
        connection = self._ensure_connection()
        if self._state.active is not tx or not tx.active:
            raise AdapterTransactionError(f"Transaction {tx.adapter} is not active on this connection.")
        return connection

    def _finish(self, tx: TransactionHandle) -> None:
        tx.active = False
        if self._state is not None:
            self._state.active = None

    # Execution ---------------------------------------------------------------
    def execute(self, tx: TransactionHandle, command: "Command") -> ExecutionResult:
        connection = self._check(tx)
        statement = self.compiler.compile(command)
        cursor = self._run(connection, statement.sql, statement.params)
        tx.statements += 1
        generated = None
        if getattr(command, "returning", None):
            row = cursor.fetchone()
            if not row:
                raise AdapterExecutionError(f"No RETURNING data for insert into '{command.table}'.")
            generated = row[0]
        return ExecutionResult(affected_rows=cursor.rowcount, generated_key=generated)

    def fetch(self, table: str, columns: Sequence[str], where: Mapping[str, Any]) -> List[Dict[str, Any]]:
        connection = self._ensure_connection()
        statement = self.compiler.select(table, columns, where)
        cursor = self._run(connection, statement.sql, statement.params)
        names = [description[0] for description in cursor.description or ()]
        return [dict(zip(names, row)) for row in cursor.fetchall()]

    def execute_sql(self, sql: str, params: Sequence[Any] | None = None):
        connection = self._ensure_connection()
        return self._run(connection, sql, tuple(params or ()))

    def _run(self, connection: Any, sql: str, params: Sequence[Any]):
        cursor = connection.cursor()
        self._validate_params(sql, params)
        driver = self._state.driver
        integrity_error = getattr(driver, "IntegrityError", None)
        driver_error = getattr(driver, "Error", None)
        with time_call(
            "postgres.execute",
            self.logger,
            sql=sql,
            params=redact_params(params),
            threshold_ms=self.slow_query_ms,
        ):
            try:
                cursor.execute(sql, params)
            except Exception as exc:
                if integrity_error is not None and isinstance(exc, integrity_error):
                    raise ConstraintViolation(str(exc)) from exc
                if driver_error is not None and isinstance(exc, driver_error):
                    raise AdapterExecutionError(str(exc)) from exc
                raise
        return cursor

    @staticmethod
    def _count_placeholders(sql: str) -> int:
        count = 0
        idx = 0
        while idx < len(sql) - 1:
            if sql[idx] == "%" and sql[idx + 1] == "s":
                count += 1
                idx += 2
                continue
            if sql[idx] == "%" and sql[idx + 1] == "%":
                idx += 2
                continue
            idx += 1
        return count

    def _validate_params(self, sql: str, params: Sequence[Any]) -> None:
        placeholder_count = self._count_placeholders(sql)
        if placeholder_count == 0:
            if params:
                raise AdapterExecutionError(
                    "Parameters provided but SQL statement has no placeholders."
                )
            return
        if placeholder_count != len(params):
            raise AdapterExecutionError(
                f"Parameter count mismatch: expected {placeholder_count}, received {len(params)}."
            )
