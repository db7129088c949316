"""
Adapter contract, transaction handles and connection configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Protocol, Sequence

from ..dialects.base import Dialect
from ..errors import ORMError
from ..security.dsns import DSNConfig, parse_dsn

if TYPE_CHECKING:
    from ..persistence.commands import Command


class AdapterError(ORMError):
    """Base error for adapter-related failures."""


class AdapterConfigurationError(AdapterError):
    """Raised when configuration or required dependencies are invalid."""


class AdapterConnectionError(AdapterError):
    """Raised when establishing or using a connection fails."""


class AdapterExecutionError(AdapterError):
    """Raised when SQL execution or parameter validation fails."""


class AdapterTransactionError(AdapterError):
    """Raised when transaction operations fail."""


class ConstraintViolation(AdapterExecutionError):
    """Raised when the database rejects a statement on an integrity constraint."""


@dataclass
class SSLConfig:
    mode: str | None = None
    rootcert: str | None = None
    cert: str | None = None
    key: str | None = None

    def postgres_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.mode:
            options["sslmode"] = self.mode
        if self.rootcert:
            options["sslrootcert"] = self.rootcert
        if self.cert:
            options["sslcert"] = self.cert
        if self.key:
            options["sslkey"] = self.key
        return options


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise AdapterConfigurationError(f"Invalid boolean value for '{key}': {value!r}")


def _parse_float(value: str, *, key: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise AdapterConfigurationError(f"Invalid float value for '{key}': {value!r}") from exc


def _parse_int(value: str, *, key: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise AdapterConfigurationError(f"Invalid integer value for '{key}': {value!r}") from exc


def _pop_bool(query: dict[str, str], key: str) -> bool | None:
    if key not in query:
        return None
    return _parse_bool(query.pop(key), key=key)


def _pop_float(query: dict[str, str], key: str) -> float | None:
    if key not in query:
        return None
    return _parse_float(query.pop(key), key=key)


def _parse_ssl(query: dict[str, str]) -> SSLConfig | None:
    ssl = SSLConfig()
    if "sslmode" in query:
        ssl.mode = query.pop("sslmode")
    if "sslrootcert" in query:
        ssl.rootcert = query.pop("sslrootcert")
    if "sslcert" in query:
        ssl.cert = query.pop("sslcert")
    if "sslkey" in query:
        ssl.key = query.pop("sslkey")
    if any(
        [
            ssl.mode,
            ssl.rootcert,
            ssl.cert,
            ssl.key,
        ]
    ):
        return ssl
    return None


def _parse_option_values(query: dict[str, str]) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for key, value in query.items():
        if key == "connect_timeout":
            options[key] = _parse_int(value, key=key)
        else:
            options[key] = value
    return options


@dataclass
class ConnectionConfig:
    """
    Normalized connection configuration for adapters.
    """

    url: str
    autocommit: bool = False
    isolation_level: str | None = None
    timeout: float | None = None
    options: dict[str, Any] | None = None
    ssl: SSLConfig | None = None
    dsn: DSNConfig | None = None
    source: str | None = None

    @classmethod
    def from_dsn(cls, dsn: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a connection config by parsing the DSN string.
        """

        parsed = parse_dsn(dsn)
        query = dict(parsed.query)

        parsed_autocommit = _pop_bool(query, "autocommit")
        parsed_timeout = _pop_float(query, "timeout")
        parsed_isolation_level = query.pop("isolation_level", None)
        parsed_ssl = _parse_ssl(query)
        options_from_dsn = _parse_option_values(query)

        options = dict(options_from_dsn)
        passed_options = kwargs.pop("options", None) or {}
        options.update(passed_options)

        autocommit = kwargs.pop("autocommit", parsed_autocommit)
        if autocommit is None:
            autocommit = False
        isolation_level = kwargs.pop("isolation_level", parsed_isolation_level)
        timeout = kwargs.pop("timeout", parsed_timeout)
        ssl = kwargs.pop("ssl", parsed_ssl)

        return cls(
            url=dsn,
            dsn=parsed,
            autocommit=autocommit,
            isolation_level=isolation_level,
            timeout=timeout,
            options=options or None,
            ssl=ssl,
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a config from an environment variable containing a DSN.
        """

        value = os.getenv(env_var)
        if not value:
            raise AdapterConfigurationError(f"Environment variable {env_var} is not set")
        return cls.from_dsn(value, source=env_var, **kwargs)

    def redacted_dsn(self) -> str:
        """
        Return a DSN safe for logging (credentials removed).
        """

        if self.dsn:
            return self.dsn.redacted()
        return self.url

    def descriptive_label(self) -> str:
        """
        Describe the config source for diagnostics.
        """

        redacted = self.redacted_dsn()
        if self.source:
            return f"{self.source} ({redacted})"
        return redacted


@dataclass
class TransactionHandle:
    """
    Opaque token for one open transaction on one adapter connection.
    """

    adapter: str
    database: str = "default"
    active: bool = True
    statements: int = 0


@dataclass
class ExecutionResult:
    affected_rows: int = 0
    generated_key: Any = None


class DatabaseAdapter(Protocol):
    """
    Adapter interface consumed by the unit of work runner and the session.

    ``execute`` receives a fully bound :class:`~emberorm.persistence.commands.Command`
    and compiles it with the adapter's dialect.
    """

    dialect: Dialect
    slow_query_ms: int

    def connect(self, config: ConnectionConfig) -> Any:
        """
        Establish a connection handle using the supplied configuration.
        """

    def close(self) -> None:
        """
        Close underlying resources. Implementations should be idempotent.
        """

    def begin(self) -> TransactionHandle:
        """
        Open a transaction and return its handle.
        """

    def execute(self, tx: TransactionHandle, command: "Command") -> ExecutionResult:
        """
        Execute one command inside ``tx``.
        """

    def commit(self, tx: TransactionHandle) -> None:
        """
        Commit the transaction identified by ``tx``.
        """

    def rollback(self, tx: TransactionHandle) -> None:
        """
        Roll back the transaction identified by ``tx``.
        """

    def fetch(self, table: str, columns: Sequence[str], where: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """
        Return rows of ``table`` matching every ``where`` equality, keyed by column.
        """

    def execute_sql(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """
        Execute a raw SQL statement outside the unit of work.
        """
