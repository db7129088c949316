"""
Database adapter interfaces and implementations.
"""

from .base import (
    AdapterConfigurationError,
    AdapterConnectionError,
    AdapterError,
    AdapterExecutionError,
    AdapterTransactionError,
    ConnectionConfig,
    ConstraintViolation,
    DatabaseAdapter,
    ExecutionResult,
    SSLConfig,
    TransactionHandle,
)
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

_ADAPTERS = {
    "sqlite": SQLiteAdapter,
    "postgres": PostgresAdapter,
}


def create_adapter(config: ConnectionConfig) -> DatabaseAdapter:
    """
    Instantiate the adapter matching the DSN scheme of ``config`` (not connected).
    """

    backend = config.dsn.backend if config.dsn else None
    if backend is None and config.url.startswith("sqlite"):
        backend = "sqlite"
    try:
        return _ADAPTERS[backend]()
    except KeyError:
        raise AdapterConfigurationError(f"No adapter for {config.descriptive_label()}") from None


__all__ = [
    "AdapterConfigurationError",
    "AdapterConnectionError",
    "AdapterError",
    "AdapterExecutionError",
    "AdapterTransactionError",
    "ConnectionConfig",
    "ConstraintViolation",
    "DatabaseAdapter",
    "ExecutionResult",
    "PostgresAdapter",
    "SQLiteAdapter",
    "SSLConfig",
    "TransactionHandle",
    "create_adapter",
]
