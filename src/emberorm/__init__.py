"""
EmberORM public package initialization.

A data-mapper persistence engine: describe roles with a :class:`Schema`,
track entities in a :class:`Session` and write them with a unit of work.
"""

from .adapters import ConnectionConfig, PostgresAdapter, SQLiteAdapter  # noqa: F401
from .core import Entity, Resolved, Unresolved  # noqa: F401
from .errors import (  # noqa: F401
    ConcurrentModification,
    DependencyCycle,
    ORMError,
    RunAborted,
    RunStateError,
    SchemaError,
    StaleState,
    UnmappedEntity,
    UnmappedField,
    UnscheduledDependency,
)
from .persistence import RunResult, RunStatus, Session, Status, UnitOfWork  # noqa: F401
from .schema import Cascade, RelationDescriptor, RelationKind, RoleSchema, Schema  # noqa: F401

__all__ = [
    "Cascade",
    "ConcurrentModification",
    "ConnectionConfig",
    "DependencyCycle",
    "Entity",
    "ORMError",
    "PostgresAdapter",
    "RelationDescriptor",
    "RelationKind",
    "Resolved",
    "RoleSchema",
    "RunAborted",
    "RunResult",
    "RunStateError",
    "RunStatus",
    "SQLiteAdapter",
    "Schema",
    "SchemaError",
    "Session",
    "StaleState",
    "Status",
    "UnitOfWork",
    "UnmappedEntity",
    "UnmappedField",
    "UnscheduledDependency",
]
